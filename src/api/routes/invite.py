"""Invite token management routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from api.routes.auth import get_current_user
from core.dependencies import InviteManagerDep
from core.exceptions import (
    InviteNotFoundError,
    PermissionDeniedError,
    StoreError,
    UserNotFoundError,
    ValidationError,
)
from schemas.invite_token import (
    CleanupResponse,
    GenerateInviteTokenRequest,
    GenerateParentInviteRequest,
    InviteToken,
    InviteTokenListResponse,
    InviteTokenRecord,
)
from schemas.role import InvitableRolesResponse
from schemas.user import User
from utils.role_hierarchy import invitable_roles

router = APIRouter(prefix="/api/invites", tags=["Invite"])


def _to_list_response(tokens: List[InviteToken]) -> InviteTokenListResponse:
    return InviteTokenListResponse(
        invite_tokens=[InviteTokenRecord.from_token(t) for t in tokens]
    )


@router.get("/invitable-roles", response_model=InvitableRolesResponse, summary="Roles I can invite")
def get_invitable_roles(
    current_user: User = Depends(get_current_user),
) -> InvitableRolesResponse:
    return InvitableRolesResponse(
        role=current_user.role, invitable_roles=invitable_roles(current_user.role)
    )


@router.post("", response_model=InviteTokenRecord, summary="Generate an invite token")
def generate_invite_token(
    req: GenerateInviteTokenRequest,
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> InviteTokenRecord:
    """Generate a regular invite token.

    Permission requirements come from the role hierarchy: superadmins invite
    principals, principals invite deputies and teachers, deputies invite
    teachers and parents, teachers invite students into their classes.

    Args:
        req: Target role, class, lifetime and usage limit.
        invite_manager: Injected InviteManager instance.
        current_user: Current authenticated user.

    Returns:
        InviteTokenRecord for the new token.

    Raises:
        HTTPException: 400 on invalid input, 403 if not permitted.
    """
    try:
        token = invite_manager.generate_invite_token(
            creator=current_user,
            target_role=req.role,
            school_id=req.school_id,
            class_id=req.class_id,
            expires_in_days=req.expires_in_days,
            usage_limit=req.usage_limit,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return InviteTokenRecord.from_token(token)


@router.post("/parent", response_model=InviteTokenRecord, summary="Generate a parent invite")
def generate_parent_invite(
    req: GenerateParentInviteRequest,
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> InviteTokenRecord:
    try:
        token = invite_manager.generate_parent_invite(
            creator=current_user,
            student_id=req.student_id,
            expires_in_days=req.expires_in_days,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return InviteTokenRecord.from_token(token)


@router.get("/mine", response_model=InviteTokenListResponse, summary="Invites I created")
def list_my_invites(
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> InviteTokenListResponse:
    return _to_list_response(invite_manager.list_created_tokens(current_user))


@router.get(
    "/schools/{school_id}",
    response_model=InviteTokenListResponse,
    summary="Invites of a school",
)
def list_school_invites(
    school_id: str,
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> InviteTokenListResponse:
    try:
        tokens = invite_manager.list_school_tokens(current_user, school_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return _to_list_response(tokens)


@router.post("/{token}/revoke", response_model=InviteTokenRecord, summary="Revoke an invite")
def revoke_invite(
    token: str,
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> InviteTokenRecord:
    """Revoke an invite token or parent invite.

    Args:
        token: The token string or "P-" code.
        invite_manager: Injected InviteManager instance.
        current_user: Current authenticated user.

    Returns:
        InviteTokenRecord of the revoked invite.

    Raises:
        HTTPException: 403 if not permitted, 404 if the invite does not exist.
    """
    try:
        revoked = invite_manager.revoke_token(current_user, token)
    except InviteNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return InviteTokenRecord.from_token(revoked)


@router.delete(
    "/schools/{school_id}/expired",
    response_model=CleanupResponse,
    summary="Delete expired invites of a school",
)
def cleanup_expired_invites(
    school_id: str,
    invite_manager: InviteManagerDep,
    current_user: User = Depends(get_current_user),
) -> CleanupResponse:
    try:
        deleted = invite_manager.cleanup_expired_tokens(current_user, school_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return CleanupResponse(deleted=deleted)
