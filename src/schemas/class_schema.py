from typing import List, Optional

from pydantic import BaseModel


class CreateClassRequest(BaseModel):
    name: str
    school_id: Optional[str] = None
    teacher_id: Optional[str] = None


class ClassInfo(BaseModel):
    id: str
    name: str
    school_id: Optional[str] = None
    teacher_id: Optional[str] = None
    created_at: str


class ClassStudentInfo(BaseModel):
    student_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    enrolled_at: str


class ClassStudentListResponse(BaseModel):
    students: List[ClassStudentInfo]
