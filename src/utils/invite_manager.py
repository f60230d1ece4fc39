"""Invite token management.

This module issues, lists, revokes and cleans up invite tokens and parent
invite codes. Who may invite whom comes from utils.role_hierarchy.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pytz
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import (
    DEFAULT_INVITE_EXPIRES_IN_DAYS,
    INVITE_GENERATE_MAX_ATTEMPTS,
    INVITE_TOKEN_ALPHABET,
    INVITE_TOKEN_LENGTH,
    PARENT_INVITE_PREFIX,
)
from core.exceptions import (
    InviteNotFoundError,
    PermissionDeniedError,
    StoreError,
    UserNotFoundError,
    ValidationError,
)
from core.logging_config import mask_secret
from models.invite_token import InviteTokenModel
from models.parent_invite import ParentInviteModel
from models.user import ProfileModel
from schemas.invite_token import InviteToken, is_parent_invite_code
from schemas.role import Role
from schemas.user import User
from utils.class_manager import ClassManager
from utils.converters import (
    model_to_record,
    parent_invite_from_record,
    parse_timestamp,
    token_from_record,
)
from utils.role_hierarchy import can_invite

logger = logging.getLogger(__name__)

# Roles that manage every token of their school
_SCHOOL_MANAGERS = (Role.BIGADMIN, Role.ADMIN)


def generate_token_string(length: int = INVITE_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_TOKEN_ALPHABET) for _ in range(length))


class InviteManager:
    """Manages invite tokens and parent invites using SQLAlchemy."""

    def __init__(
        self,
        db: Session,
        class_manager: ClassManager,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize InviteManager.

        Args:
            db: SQLAlchemy Session.
            class_manager: Used to check that teachers teach the class they
                invite students into.
            clock: Returns the current time; defaults to UTC now.
        """
        self.db = db
        self.class_manager = class_manager
        self.clock = clock or (lambda: datetime.now(pytz.utc))

    def _expiry(self, expires_in_days: Optional[int]) -> str:
        days = expires_in_days or DEFAULT_INVITE_EXPIRES_IN_DAYS
        return (self.clock() + timedelta(days=days)).isoformat()

    def _insert_with_retry(self, build: Callable[[str], object], prefix: str = ""):
        """Insert a freshly generated token, retrying on unique collisions."""
        for attempt in range(1, INVITE_GENERATE_MAX_ATTEMPTS + 1):
            model = build(prefix + generate_token_string())
            try:
                self.db.add(model)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning("Invite token collision on attempt %d, retrying", attempt)
                continue
            self.db.refresh(model)
            return model
        raise StoreError(
            f"Failed to generate a unique invite token after {INVITE_GENERATE_MAX_ATTEMPTS} attempts"
        )

    def _can_manage_school(self, actor: User, school_id: Optional[str]) -> bool:
        if actor.role == Role.SUPERADMIN:
            return True
        return actor.role in _SCHOOL_MANAGERS and actor.school_id == school_id

    def generate_invite_token(
        self,
        creator: User,
        target_role: Role,
        school_id: Optional[str] = None,
        class_id: Optional[str] = None,
        expires_in_days: Optional[int] = None,
        usage_limit: int = 1,
    ) -> InviteToken:
        """Issue a regular invite token.

        Args:
            creator: The user issuing the token.
            target_role: Role the token grants.
            school_id: School of the token. Only a superadmin may choose it;
                everyone else issues tokens for their own school.
            class_id: Class a student token enrolls into. Required when a
                teacher invites a student.
            expires_in_days: Lifetime in days; defaults to
                DEFAULT_INVITE_EXPIRES_IN_DAYS.
            usage_limit: How many registrations the token allows.

        Returns:
            The created InviteToken.

        Raises:
            PermissionDeniedError: If the creator may not invite target_role
                or does not teach class_id.
            ValidationError: If class_id is missing or given for a
                non-student token.
            StoreError: If no unique token could be inserted.
        """
        if not can_invite(creator.role, target_role):
            raise PermissionDeniedError(
                f"{creator.role.value} cannot invite {target_role.value}"
            )
        if creator.role != Role.SUPERADMIN:
            if school_id and school_id != creator.school_id:
                raise PermissionDeniedError("You can only invite into your own school")
            school_id = creator.school_id

        if class_id and target_role != Role.STUDENT:
            raise ValidationError("Only student invites can target a class")
        if creator.role == Role.TEACHER and target_role == Role.STUDENT:
            if not class_id:
                raise ValidationError("Teachers must choose a class when inviting students")
            if not self.class_manager.teaches_class(creator.id, class_id):
                raise PermissionDeniedError("You can only invite students into your own classes")

        created_at = self.clock().isoformat()
        expires_at = self._expiry(expires_in_days)
        model = self._insert_with_retry(
            lambda token: InviteTokenModel(
                token=token,
                role=target_role.value,
                school_id=school_id,
                specific_class_id=class_id,
                created_by_user_id=creator.id,
                times_used=0,
                usage_limit=usage_limit,
                created_at=created_at,
                expires_at=expires_at,
            )
        )
        logger.info(
            "Generated %s invite token %s by %s",
            target_role.value,
            mask_secret(model.token),
            creator.id,
        )
        return token_from_record(model_to_record(model))

    def generate_parent_invite(
        self,
        creator: User,
        student_id: str,
        expires_in_days: Optional[int] = None,
    ) -> InviteToken:
        """Issue a "P-" code that registers a parent linked to student_id.

        Raises:
            PermissionDeniedError: If the creator may not invite parents or
                the student belongs to another school.
            UserNotFoundError: If the student does not exist.
            ValidationError: If student_id is not a student.
        """
        if not can_invite(creator.role, Role.PARENT):
            raise PermissionDeniedError(f"{creator.role.value} cannot invite parents")

        student = self.db.query(ProfileModel).filter(ProfileModel.id == student_id).first()
        if student is None:
            raise UserNotFoundError(student_id)
        if student.role != Role.STUDENT.value:
            raise ValidationError("Parent invites must point at a student")
        if student.school_id != creator.school_id:
            raise PermissionDeniedError("Student is not in your school")

        created_at = self.clock().isoformat()
        expires_at = self._expiry(expires_in_days)
        model = self._insert_with_retry(
            lambda code: ParentInviteModel(
                code=code,
                student_id=student_id,
                school_id=creator.school_id,
                times_used=0,
                usage_limit=1,
                created_by=creator.id,
                created_at=created_at,
                expires_at=expires_at,
            ),
            prefix=PARENT_INVITE_PREFIX,
        )
        logger.info(
            "Generated parent invite %s for student %s by %s",
            mask_secret(model.code),
            student_id,
            creator.id,
        )
        return parent_invite_from_record(model_to_record(model))

    def list_created_tokens(self, creator: User) -> List[InviteToken]:
        """List every token and parent invite the creator issued, newest first."""
        tokens = [
            token_from_record(model_to_record(m))
            for m in self.db.query(InviteTokenModel)
            .filter(InviteTokenModel.created_by_user_id == creator.id)
            .all()
        ]
        tokens.extend(
            parent_invite_from_record(model_to_record(m))
            for m in self.db.query(ParentInviteModel)
            .filter(ParentInviteModel.created_by == creator.id)
            .all()
        )
        return sorted(tokens, key=lambda t: t.created_at, reverse=True)

    def list_school_tokens(self, actor: User, school_id: str) -> List[InviteToken]:
        """List the regular tokens and parent invites of a school.

        Raises:
            PermissionDeniedError: Unless the actor manages that school.
        """
        if not self._can_manage_school(actor, school_id):
            raise PermissionDeniedError("You cannot view invites of this school")
        tokens = [
            token_from_record(model_to_record(m))
            for m in self.db.query(InviteTokenModel)
            .filter(InviteTokenModel.school_id == school_id)
            .all()
        ]
        tokens.extend(
            parent_invite_from_record(model_to_record(m))
            for m in self.db.query(ParentInviteModel)
            .filter(ParentInviteModel.school_id == school_id)
            .all()
        )
        return sorted(tokens, key=lambda t: t.created_at, reverse=True)

    def revoke_token(self, actor: User, token: str) -> InviteToken:
        """Use up a token so it can no longer register anyone.

        Raises:
            InviteNotFoundError: If the token does not exist.
            PermissionDeniedError: Unless the actor created the token or
                manages its school.
        """
        if is_parent_invite_code(token):
            model = self.db.query(ParentInviteModel).filter(ParentInviteModel.code == token).first()
            creator_id = model.created_by if model else None
        else:
            model = self.db.query(InviteTokenModel).filter(InviteTokenModel.token == token).first()
            creator_id = model.created_by_user_id if model else None
        if model is None:
            raise InviteNotFoundError(token)
        if creator_id != actor.id and not self._can_manage_school(actor, model.school_id):
            raise PermissionDeniedError("You cannot revoke this invite")

        model.times_used = model.usage_limit
        self.db.commit()
        self.db.refresh(model)
        logger.info("Invite %s revoked by %s", mask_secret(token), actor.id)
        record = model_to_record(model)
        if isinstance(model, ParentInviteModel):
            return parent_invite_from_record(record)
        return token_from_record(record)

    def cleanup_expired_tokens(self, actor: User, school_id: str) -> int:
        """Delete the expired tokens and parent invites of a school.

        Returns:
            How many rows were deleted.

        Raises:
            PermissionDeniedError: Unless the actor manages that school.
        """
        if not self._can_manage_school(actor, school_id):
            raise PermissionDeniedError("You cannot clean up invites of this school")

        now = self.clock()
        deleted = 0
        for model_class in (InviteTokenModel, ParentInviteModel):
            rows = (
                self.db.query(model_class)
                .filter(model_class.school_id == school_id, model_class.expires_at.isnot(None))
                .all()
            )
            for row in rows:
                expires_at = parse_timestamp(row.expires_at)
                if expires_at is not None and expires_at < now:
                    self.db.delete(row)
                    deleted += 1
        self.db.commit()
        logger.info("Deleted %d expired invites of school %s", deleted, school_id)
        return deleted
