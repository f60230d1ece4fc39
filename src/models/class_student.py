from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base


class ClassStudentModel(Base):
    __tablename__ = "class_students"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_students_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(String, ForeignKey("classes.id", ondelete="CASCADE"), index=True)
    student_id = Column(String, index=True, nullable=False)
    enrolled_at = Column(String, nullable=False)

    class_ = relationship("ClassModel", back_populates="enrollments")
