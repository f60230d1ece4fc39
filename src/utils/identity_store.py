"""Account and profile management.

This module provides the SQL identity store: password hashing, account
creation with inline profile materialization, authentication, and role
reassignment.
"""

import logging
import uuid
from typing import Any, List, Mapping, Optional

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import BCRYPT_ROUNDS
from core.exceptions import (
    IdentityCreationError,
    PermissionDeniedError,
    StoreError,
    UserNotFoundError,
)
from models.user import ProfileModel
from schemas.role import Role
from schemas.user import Account, User
from utils.converters import model_to_record, model_to_user, now_iso
from utils.role_hierarchy import can_change_role
from utils.stores import IdentityStore, Record

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password.

    Returns:
        Hashed password (bcrypt hash string).
    """
    password_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a bcrypt hash.

    Args:
        plain_password: Plain text password to verify.
        hashed_password: Bcrypt hash string to verify against.

    Returns:
        True if password matches, False otherwise.
    """
    password_bytes = plain_password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error("Password verification error: %s", e)
        return False


class SqlIdentityStore(IdentityStore):
    """Manages accounts and their profiles using SQLAlchemy."""

    def __init__(self, db: Session):
        """Initialize SqlIdentityStore.

        Args:
            db: SQLAlchemy Session.
        """
        self.db = db
        self._current_user_id: Optional[str] = None

    def create_account(
        self, email: str, password: str, metadata: Mapping[str, Any]
    ) -> Account:
        """Create an account and its profile row.

        The profile is built from the sign-up metadata (role, school, names),
        the same way a database trigger would on a hosted auth backend.

        Args:
            email: Account email, stored lower-cased.
            password: Plain text password.
            metadata: Sign-up metadata; must carry a known "role".

        Returns:
            The created Account.

        Raises:
            IdentityCreationError: If the email is taken or the metadata
                names no valid role.
        """
        normalized_email = email.strip().lower()
        role = Role.from_string(metadata.get("role"))
        if role is None:
            raise IdentityCreationError("Invalid role in sign-up metadata")

        try:
            existing = (
                self.db.query(ProfileModel)
                .filter(ProfileModel.email == normalized_email)
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise IdentityCreationError(str(e)) from e
        if existing:
            raise IdentityCreationError("User already registered")

        model = ProfileModel(
            id=str(uuid.uuid4()),
            email=normalized_email,
            password_hash=hash_password(password),
            role=role.value,
            school_id=metadata.get("school_id"),
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            created_at=now_iso(),
        )
        # Handle potential race condition: the unique constraint on email
        # catches a concurrent registration that passed the check above
        try:
            self.db.add(model)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise IdentityCreationError("User already registered") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise IdentityCreationError(str(e)) from e

        self._current_user_id = model.id
        logger.info("Created account %s with role %s", model.id, role.value)
        return Account(id=model.id, email=normalized_email, metadata=dict(metadata))

    def current_user_id(self) -> Optional[str]:
        return self._current_user_id

    def find_profile(self, user_id: str) -> Optional[Record]:
        try:
            model = self.db.query(ProfileModel).filter(ProfileModel.id == user_id).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to look up profile: {e}") from e
        return model_to_record(model) if model else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        model = self.db.query(ProfileModel).filter(ProfileModel.id == user_id).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        model = (
            self.db.query(ProfileModel)
            .filter(ProfileModel.email == email.strip().lower())
            .first()
        )
        if model:
            return model_to_user(model)
        return None

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Check credentials and remember the signed-in account.

        Returns:
            The User if the credentials match, None otherwise.
        """
        user = self.get_user_by_email(email)
        if user is None or not user.password_hash:
            return None
        if not verify_password(password, user.password_hash):
            return None
        self._current_user_id = user.id
        return user

    def list_users(self, school_id: Optional[str] = None) -> List[User]:
        query = self.db.query(ProfileModel)
        if school_id:
            query = query.filter(ProfileModel.school_id == school_id)
        return [model_to_user(m) for m in query.order_by(ProfileModel.created_at).all()]

    def update_role(self, actor: User, user_id: str, new_role: Role) -> User:
        """Reassign a user's role.

        Args:
            actor: The user performing the change.
            user_id: Whose role changes.
            new_role: The role to assign.

        Returns:
            The updated User.

        Raises:
            UserNotFoundError: If user_id does not exist.
            PermissionDeniedError: If the actor may not make this change.
        """
        model = self.db.query(ProfileModel).filter(ProfileModel.id == user_id).first()
        if not model:
            raise UserNotFoundError(user_id)

        if actor.role != Role.SUPERADMIN and actor.school_id != model.school_id:
            raise PermissionDeniedError("You can only change roles within your school")
        if not can_change_role(actor.role, model.role, new_role):
            raise PermissionDeniedError(
                f"You do not have permission to assign the {new_role.value} role"
            )

        previous = model.role
        model.role = new_role.value
        self.db.commit()
        self.db.refresh(model)
        logger.info(
            "User %s changed role of %s from %s to %s",
            actor.id,
            user_id,
            previous,
            new_role.value,
        )
        return model_to_user(model)
