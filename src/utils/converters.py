"""Conversions between stored records, ORM models and schemas."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from models.user import ProfileModel
from schemas.invite_token import InviteToken, ParentLink, StudentEnrollment
from schemas.role import Role
from schemas.user import User

logger = logging.getLogger(__name__)

# Accepts any fractional-second precision, unlike fromisoformat on 3.10
_DATETIME_ADAPTER = TypeAdapter(datetime)


def now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp leniently.

    Accepts datetimes and ISO-8601 strings (with or without a trailing "Z").
    Naive values are taken as UTC. Anything unparsable is treated as absent.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = _DATETIME_ADAPTER.validate_python(value.strip())
        except PydanticValidationError:
            logger.debug("Ignoring unparsable timestamp: %r", value)
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return parsed


def model_to_record(model: Any) -> Dict[str, Any]:
    """Flatten an ORM row into a plain dict keyed by column name."""
    return {column.name: getattr(model, column.name) for column in model.__table__.columns}


def token_from_record(record: Dict[str, Any]) -> InviteToken:
    """Build an InviteToken from an invite_tokens record.

    Raises:
        ValueError: If the record is missing required fields or has an
            unknown role.
    """
    role = Role.from_string(record.get("role"))
    if not record.get("token") or role is None:
        raise ValueError("Invite token record is missing token or role")
    if record.get("times_used") is None or record.get("usage_limit") is None:
        raise ValueError("Invite token record is missing usage counters")

    class_id = record.get("specific_class_id")
    return InviteToken(
        token=record["token"],
        role=role,
        school_id=record.get("school_id"),
        created_by_user_id=record.get("created_by_user_id"),
        payload=StudentEnrollment(class_id=str(class_id)) if class_id else None,
        times_used=record["times_used"],
        usage_limit=record["usage_limit"],
        expires_at=parse_timestamp(record.get("expires_at")),
        created_at=parse_timestamp(record.get("created_at")) or datetime.now(pytz.utc),
    )


def parent_invite_from_record(record: Dict[str, Any]) -> InviteToken:
    """Normalize a parent_invites record into an InviteToken.

    Parent invites always grant the parent role and point at a student.
    """
    student_id = record.get("student_id")
    usage_limit = record.get("usage_limit")
    return InviteToken(
        token=record["code"],
        role=Role.PARENT,
        school_id=record.get("school_id"),
        created_by_user_id=record.get("created_by"),
        payload=ParentLink(student_id=str(student_id)) if student_id else None,
        times_used=record.get("times_used") or 0,
        usage_limit=usage_limit if usage_limit is not None else 1,
        expires_at=parse_timestamp(record.get("expires_at")),
        created_at=parse_timestamp(record.get("created_at")) or datetime.now(pytz.utc),
    )


def model_to_user(model: ProfileModel) -> User:
    return User(
        id=model.id,
        email=model.email,
        password_hash=model.password_hash,
        role=Role.from_string(model.role) or Role.STUDENT,
        school_id=model.school_id,
        first_name=model.first_name,
        last_name=model.last_name,
        created_at=parse_timestamp(model.created_at),
    )
