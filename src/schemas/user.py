"""User schema definitions.

This module defines the profile, registered identity, and authentication
request/response models.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from pydantic import BaseModel, Field

from schemas.role import Role


class User(BaseModel):
    """A stored profile, as seen by the API layer."""

    id: str
    email: str
    password_hash: Optional[str] = Field(default=None, exclude=True)
    role: Role
    school_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Account(BaseModel):
    """What the identity collaborator hands back after creating an account."""

    id: str
    email: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RegisteredIdentity(BaseModel):
    """The newly registered user, built from locally known values."""

    id: str
    email: str
    role: Role
    school_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(pytz.utc))


class RegisterRequest(BaseModel):
    email: str
    password: str
    invite_token: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str = "User registered successfully"
    user: RegisteredIdentity


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    user: User
    token: str


class CurrentUserResponse(BaseModel):
    user: User


class ChangeRoleRequest(BaseModel):
    role: Role
