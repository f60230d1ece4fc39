"""Role schema definitions."""

import enum
from typing import List, Optional

from pydantic import BaseModel


class Role(str, enum.Enum):
    """User roles, declared from highest to lowest authority."""

    SUPERADMIN = "superadmin"
    BIGADMIN = "bigadmin"  # principal
    ADMIN = "admin"  # deputy
    TEACHER = "teacher"
    PARENT = "parent"
    STUDENT = "student"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["Role"]:
        """Parse a role name case-insensitively.

        Returns:
            The matching Role, or None for missing or unknown names.
        """
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        return None


class RoleInfo(BaseModel):
    role: Role
    rank: int


class RoleListResponse(BaseModel):
    roles: List[RoleInfo]


class InvitableRolesResponse(BaseModel):
    role: Role
    invitable_roles: List[Role]


class CanInitiateResponse(BaseModel):
    initiator: str
    target: str
    allowed: bool
