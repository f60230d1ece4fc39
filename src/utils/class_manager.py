"""Class management utilities."""

import logging
import secrets
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ClassNotFoundError, StoreError
from models.class_model import ClassModel
from models.class_student import ClassStudentModel
from models.user import ProfileModel
from utils.converters import now_iso
from utils.stores import EnrollmentStore

logger = logging.getLogger(__name__)


class ClassManager(EnrollmentStore):
    """Manages classes and student enrollment."""

    def __init__(self, db: Session):
        self.db = db

    def create_class(
        self,
        name: str,
        school_id: Optional[str] = None,
        teacher_id: Optional[str] = None,
    ) -> ClassModel:
        class_model = ClassModel(
            id=secrets.token_hex(8),
            school_id=school_id,
            name=name,
            teacher_id=teacher_id,
            created_at=now_iso(),
        )
        self.db.add(class_model)
        self.db.commit()
        self.db.refresh(class_model)
        logger.info("Created class %s in school %s", class_model.id, school_id)
        return class_model

    def get_class(self, class_id: str) -> ClassModel:
        model = self.db.query(ClassModel).filter(ClassModel.id == class_id).first()
        if not model:
            raise ClassNotFoundError(class_id)
        return model

    def teaches_class(self, teacher_id: str, class_id: str) -> bool:
        return (
            self.db.query(ClassModel)
            .filter(ClassModel.id == class_id, ClassModel.teacher_id == teacher_id)
            .first()
            is not None
        )

    def enroll_student(self, class_id: str, student_id: str) -> None:
        """Insert a class enrollment row.

        Enrolling an already enrolled student is a no-op.

        Raises:
            StoreError: If the row cannot be written.
        """
        existing = (
            self.db.query(ClassStudentModel)
            .filter(
                ClassStudentModel.class_id == class_id,
                ClassStudentModel.student_id == student_id,
            )
            .first()
        )
        if existing:
            return
        enrollment = ClassStudentModel(
            class_id=class_id,
            student_id=student_id,
            enrolled_at=now_iso(),
        )
        try:
            self.db.add(enrollment)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Student %s already enrolled in class %s", student_id, class_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to enroll student: {e}") from e

    def list_students(self, class_id: str) -> List[dict]:
        query = (
            self.db.query(ClassStudentModel, ProfileModel)
            .outerjoin(ProfileModel, ProfileModel.id == ClassStudentModel.student_id)
            .filter(ClassStudentModel.class_id == class_id)
            .order_by(ClassStudentModel.enrolled_at)
        )
        results = []
        for enrollment, profile in query.all():
            results.append(
                {
                    "student_id": enrollment.student_id,
                    "email": profile.email if profile else None,
                    "first_name": profile.first_name if profile else None,
                    "last_name": profile.last_name if profile else None,
                    "enrolled_at": enrollment.enrolled_at,
                }
            )
        return results
