"""Invite token schema definitions.

An InviteToken is the normalized form of both regular invite tokens and
"P-" prefixed parent invites. What the token points at is carried in a
tagged payload instead of one overloaded id field.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

import pytz
from pydantic import BaseModel, Field, field_validator

from config import PARENT_INVITE_PREFIX
from schemas.role import Role


class StudentEnrollment(BaseModel):
    """Enroll the registering student into a class."""

    kind: Literal["student_enrollment"] = "student_enrollment"
    class_id: str


class ParentLink(BaseModel):
    """Link the registering parent to an existing student."""

    kind: Literal["parent_link"] = "parent_link"
    student_id: str


TokenPayload = Annotated[
    Union[StudentEnrollment, ParentLink], Field(discriminator="kind")
]


def is_parent_invite_code(token: str) -> bool:
    return token.startswith(PARENT_INVITE_PREFIX)


class InviteToken(BaseModel):
    token: str = Field(description="Opaque unique token string.")
    role: Role = Field(description="Role granted on registration.")
    school_id: Optional[str] = Field(
        default=None, description="Null only for superadmin-scoped tokens."
    )
    created_by_user_id: Optional[str] = None
    payload: Optional[TokenPayload] = Field(
        default=None,
        description="What the token points at: a class to join or a student to link.",
    )
    times_used: int = Field(default=0, ge=0)
    usage_limit: int = Field(default=1, ge=1)
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(pytz.utc))

    @field_validator("expires_at", "created_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are stored in UTC
        if value is not None and value.tzinfo is None:
            return pytz.utc.localize(value)
        return value

    @property
    def is_parent_invite(self) -> bool:
        return is_parent_invite_code(self.token)

    @property
    def is_used(self) -> bool:
        return self.times_used >= self.usage_limit

    @property
    def is_active(self) -> bool:
        return self.times_used < self.usage_limit

    def is_expired_at(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(datetime.now(pytz.utc))

    def is_valid_at(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired_at(now)

    @property
    def is_valid(self) -> bool:
        return self.is_valid_at(datetime.now(pytz.utc))

    @property
    def specific_class_id(self) -> Optional[str]:
        """Wire-compatible view of the payload target.

        Student tokens report their class id; parent invites report the
        student id, as the original invite records did.
        """
        if isinstance(self.payload, StudentEnrollment):
            return self.payload.class_id
        if isinstance(self.payload, ParentLink):
            return self.payload.student_id
        return None

    @property
    def enrollment_class_id(self) -> Optional[str]:
        """Class to enroll into; only student tokens ever have one."""
        if self.role == Role.STUDENT and isinstance(self.payload, StudentEnrollment):
            return self.payload.class_id
        return None

    @property
    def linked_student_id(self) -> Optional[str]:
        if isinstance(self.payload, ParentLink):
            return self.payload.student_id
        return None


class InviteTokenInfo(BaseModel):
    """Public view of a validated token, returned before registration."""

    token: str
    role: Role
    school_id: Optional[str] = None
    specific_class_id: Optional[str] = None
    is_parent_invite: bool = False
    expires_at: Optional[datetime] = None

    @classmethod
    def from_token(cls, token: InviteToken) -> "InviteTokenInfo":
        return cls(
            token=token.token,
            role=token.role,
            school_id=token.school_id,
            specific_class_id=token.specific_class_id,
            is_parent_invite=token.is_parent_invite,
            expires_at=token.expires_at,
        )


class InviteTokenRecord(InviteTokenInfo):
    """Full view of a token for the people who manage it."""

    created_by_user_id: Optional[str] = None
    times_used: int
    usage_limit: int
    created_at: datetime
    is_valid: bool

    @classmethod
    def from_token(cls, token: InviteToken) -> "InviteTokenRecord":
        return cls(
            token=token.token,
            role=token.role,
            school_id=token.school_id,
            specific_class_id=token.specific_class_id,
            is_parent_invite=token.is_parent_invite,
            expires_at=token.expires_at,
            created_by_user_id=token.created_by_user_id,
            times_used=token.times_used,
            usage_limit=token.usage_limit,
            created_at=token.created_at,
            is_valid=token.is_valid,
        )


class ValidateInviteTokenRequest(BaseModel):
    token: str


class GenerateInviteTokenRequest(BaseModel):
    role: Role
    school_id: Optional[str] = None
    class_id: Optional[str] = None
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=365)
    usage_limit: int = Field(default=1, ge=1, le=500)


class GenerateParentInviteRequest(BaseModel):
    student_id: str
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=365)


class InviteTokenListResponse(BaseModel):
    invite_tokens: List[InviteTokenRecord]


class CleanupResponse(BaseModel):
    deleted: int
