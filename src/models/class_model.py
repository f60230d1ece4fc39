from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from .base import Base


class ClassModel(Base):
    __tablename__ = "classes"

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, index=True, nullable=True)
    name = Column(String, nullable=False)
    teacher_id = Column(String, index=True, nullable=True)
    created_at = Column(String, nullable=False)

    enrollments = relationship(
        "ClassStudentModel",
        back_populates="class_",
        cascade="all, delete-orphan",
    )
