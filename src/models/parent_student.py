from sqlalchemy import Column, Integer, String, UniqueConstraint
from .base import Base


class ParentStudentModel(Base):
    __tablename__ = "parent_student"
    __table_args__ = (
        UniqueConstraint("parent_id", "student_id", name="uq_parent_student_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    parent_id = Column(String, index=True, nullable=False)
    student_id = Column(String, index=True, nullable=False)
    relationship = Column(String, nullable=False, default="parent")
    created_at = Column(String, nullable=False)
