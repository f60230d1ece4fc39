"""Role hierarchy routes.

Read-only views of the role hierarchy, for clients that gate their screens
on it.
"""

from fastapi import APIRouter, HTTPException, status

from schemas.role import (
    CanInitiateResponse,
    InvitableRolesResponse,
    Role,
    RoleInfo,
    RoleListResponse,
)
from utils.role_hierarchy import can_initiate_conversation, invitable_roles, rank

router = APIRouter(prefix="/api/roles", tags=["Roles"])


@router.get("", response_model=RoleListResponse, summary="List roles by authority")
def list_roles() -> RoleListResponse:
    return RoleListResponse(
        roles=[RoleInfo(role=role, rank=rank(role)) for role in sorted(Role, key=rank)]
    )


@router.get("/can-initiate", response_model=CanInitiateResponse, summary="Conversation check")
def can_initiate(initiator: str, target: str) -> CanInitiateResponse:
    """Check whether initiator may open a conversation with target.

    Args:
        initiator: Role name of the initiating user.
        target: Role name of the other user.

    Returns:
        CanInitiateResponse with the decision.
    """
    return CanInitiateResponse(
        initiator=initiator,
        target=target,
        allowed=can_initiate_conversation(initiator, target),
    )


@router.get("/{role}/invitable", response_model=InvitableRolesResponse, summary="Invitable roles")
def get_invitable_roles(role: str) -> InvitableRolesResponse:
    parsed = Role.from_string(role)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown role: {role}",
        )
    return InvitableRolesResponse(role=parsed, invitable_roles=invitable_roles(parsed))
