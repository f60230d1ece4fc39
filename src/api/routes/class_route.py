"""Class management routes."""

from fastapi import APIRouter, Depends, HTTPException, status

from api.routes.auth import get_current_user
from core.dependencies import ClassManagerDep
from core.exceptions import ClassNotFoundError
from schemas.class_schema import (
    ClassInfo,
    ClassStudentInfo,
    ClassStudentListResponse,
    CreateClassRequest,
)
from schemas.role import Role
from schemas.user import User

router = APIRouter(prefix="/api/classes", tags=["Class"])

# Roles that may create classes for any teacher of their school
_CLASS_ADMINS = (Role.SUPERADMIN, Role.BIGADMIN, Role.ADMIN)


def _build_class_info(model) -> ClassInfo:
    return ClassInfo(
        id=model.id,
        name=model.name,
        school_id=model.school_id,
        teacher_id=model.teacher_id,
        created_at=model.created_at,
    )


@router.post("", response_model=ClassInfo, summary="Create a class")
def create_class(
    req: CreateClassRequest,
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> ClassInfo:
    """Create a class.

    Teachers create classes they teach themselves; admins may name any
    teacher.

    Raises:
        HTTPException: 400 on an empty name, 403 for other roles.
    """
    if current_user.role == Role.TEACHER:
        teacher_id = current_user.id
    elif current_user.role in _CLASS_ADMINS:
        teacher_id = req.teacher_id
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only teachers and admins can create classes.",
        )
    name = req.name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Class name cannot be empty.",
        )
    school_id = req.school_id if current_user.role == Role.SUPERADMIN else current_user.school_id
    class_model = class_manager.create_class(name, school_id=school_id, teacher_id=teacher_id)
    return _build_class_info(class_model)


@router.get(
    "/{class_id}/students",
    response_model=ClassStudentListResponse,
    summary="List students of a class",
)
def list_class_students(
    class_id: str,
    class_manager: ClassManagerDep,
    current_user: User = Depends(get_current_user),
) -> ClassStudentListResponse:
    try:
        class_model = class_manager.get_class(class_id)
    except ClassNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    is_teacher = class_model.teacher_id == current_user.id
    is_school_admin = current_user.role in _CLASS_ADMINS and (
        current_user.role == Role.SUPERADMIN or current_user.school_id == class_model.school_id
    )
    if not (is_teacher or is_school_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot view this class.",
        )
    students = [ClassStudentInfo(**row) for row in class_manager.list_students(class_id)]
    return ClassStudentListResponse(students=students)
