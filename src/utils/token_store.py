"""SQLAlchemy-backed invite token store."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import StoreError
from core.logging_config import mask_secret
from models.invite_token import InviteTokenModel
from models.parent_invite import ParentInviteModel
from models.parent_student import ParentStudentModel
from utils.converters import model_to_record, now_iso
from utils.stores import Record, TokenStore

logger = logging.getLogger(__name__)


class SqlTokenStore(TokenStore):
    """Invite tokens, parent invites and parent-student links in SQL."""

    def __init__(self, db: Session):
        """Initialize SqlTokenStore.

        Args:
            db: SQLAlchemy Session.
        """
        self.db = db

    def find_by_token(self, token: str) -> Optional[Record]:
        try:
            model = (
                self.db.query(InviteTokenModel)
                .filter(InviteTokenModel.token == token)
                .first()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to look up invite token: {e}") from e
        return model_to_record(model) if model else None

    def increment_usage(self, token: str) -> bool:
        """Add one use to a token that is still below its usage limit.

        The limit check and the increment are one UPDATE statement, so two
        concurrent registrations cannot both take the last use.
        """
        stmt = (
            update(InviteTokenModel)
            .where(
                InviteTokenModel.token == token,
                InviteTokenModel.times_used < InviteTokenModel.usage_limit,
            )
            .values(times_used=InviteTokenModel.times_used + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to record invite token usage: {e}") from e

        if result.rowcount != 1:
            logger.warning(
                "Invite token %s was not incremented (missing or exhausted)",
                mask_secret(token),
            )
            return False
        return True

    def find_parent_invite_by_code(self, code: str) -> Optional[Record]:
        try:
            model = (
                self.db.query(ParentInviteModel)
                .filter(ParentInviteModel.code == code)
                .first()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to look up parent invite: {e}") from e
        return model_to_record(model) if model else None

    def insert_parent_student_link(self, parent_id: str, student_id: str) -> None:
        existing = (
            self.db.query(ParentStudentModel)
            .filter(
                ParentStudentModel.parent_id == parent_id,
                ParentStudentModel.student_id == student_id,
            )
            .first()
        )
        if existing:
            return

        link = ParentStudentModel(
            parent_id=parent_id,
            student_id=student_id,
            relationship="parent",
            created_at=now_iso(),
        )
        # Two requests may both pass the check; the unique constraint decides
        try:
            self.db.add(link)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Parent %s already linked to student %s", parent_id, student_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to link parent to student: {e}") from e

    def update_parent_invite_usage(
        self, code: str, parent_id: str, used_at: datetime
    ) -> None:
        stmt = (
            update(ParentInviteModel)
            .where(
                ParentInviteModel.code == code,
                ParentInviteModel.times_used < ParentInviteModel.usage_limit,
            )
            .values(
                times_used=ParentInviteModel.times_used + 1,
                parent_id=parent_id,
                used_at=used_at.isoformat(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to update parent invite: {e}") from e

        if result.rowcount != 1:
            if self.find_parent_invite_by_code(code) is None:
                raise StoreError("Parent invite not found")
            logger.warning(
                "Parent invite %s already at its usage limit", mask_secret(code)
            )
