"""Authentication routes.

This module handles HTTP endpoints for invite token validation,
invite-based registration, login, and role changes.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pytz
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY
from core.dependencies import (
    IdentityStoreDep,
    LoginLimiterDep,
    RegistrationLimiterDep,
    RegistrationOrchestratorDep,
    TokenValidatorDep,
    ValidationLimiterDep,
)
from core.exceptions import (
    IdentityCreationError,
    InvalidInviteTokenError,
    PermissionDeniedError,
    RateLimitExceededError,
    UserNotFoundError,
    ValidationError,
)
from schemas.invite_token import InviteTokenInfo, ValidateInviteTokenRequest
from schemas.user import (
    ChangeRoleRequest,
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    User,
)
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# HTTP Bearer token security
security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token.

    Args:
        data: Data to encode in the token.
        expires_delta: Optional expiration time delta.

    Returns:
        Encoded JWT token string.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(pytz.utc) + expires_delta
    else:
        expire = datetime.now(pytz.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Verify JWT token from Authorization header.

    Args:
        credentials: HTTP Bearer token credentials.

    Returns:
        Decoded token payload.

    Raises:
        HTTPException: If token is invalid or expired.
    """
    try:
        payload = jwt.decode(
            credentials.credentials, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    if payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    return payload


def get_current_user(
    token_payload: dict = Depends(verify_token),
    identity_store: IdentityStoreDep = None,
) -> User:
    """Get current authenticated user.

    Args:
        token_payload: Decoded JWT token payload.
        identity_store: Injected SqlIdentityStore instance.

    Returns:
        Current User object.

    Raises:
        HTTPException: If user is not found.
    """
    user = identity_store.get_user_by_id(token_payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def _ensure_allowed(limiter: RateLimiter, key: str) -> None:
    try:
        limiter.ensure_allowed(key)
    except RateLimitExceededError as e:
        retry_after = int(e.retry_after_seconds or 0)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(retry_after)},
        )


@router.post(
    "/invite-tokens/validate",
    response_model=InviteTokenInfo,
    summary="Validate an invite token",
)
def validate_invite_token(
    req: ValidateInviteTokenRequest,
    request: Request,
    validator: TokenValidatorDep,
    limiter: ValidationLimiterDep,
) -> InviteTokenInfo:
    """Check an invite token without consuming it.

    Args:
        req: Request with the token string.
        request: Incoming request; its client host keys the rate limit.
        validator: Injected TokenValidator instance.
        limiter: Validation rate limiter.

    Returns:
        InviteTokenInfo describing what the token grants.

    Raises:
        HTTPException: 400 for unusable tokens, 429 when rate limited.
    """
    client_host = request.client.host if request.client else "unknown"
    _ensure_allowed(limiter, client_host)
    try:
        invite = validator.validate(req.token)
    except InvalidInviteTokenError as e:
        limiter.record_attempt(client_host)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return InviteTokenInfo.from_token(invite)


@router.post("/register", response_model=RegisterResponse, summary="Register with an invite token")
def register(
    req: RegisterRequest,
    orchestrator: RegistrationOrchestratorDep,
    limiter: RegistrationLimiterDep,
) -> RegisterResponse:
    """Register a new user with an invite token.

    The role, school and class come from the token, never from the request.

    Args:
        req: Registration request with email, password and invite token.
        orchestrator: Injected RegistrationOrchestrator instance.
        limiter: Registration rate limiter.

    Returns:
        RegisterResponse with the registered identity.

    Raises:
        HTTPException: 400 if validation, the token or sign-up fails; 429
            when rate limited.
    """
    _ensure_allowed(limiter, req.email)
    try:
        identity = orchestrator.register(
            email=req.email,
            password=req.password,
            invite_token=req.invite_token,
            first_name=req.first_name,
            last_name=req.last_name,
        )
    except (ValidationError, InvalidInviteTokenError, IdentityCreationError) as e:
        limiter.record_attempt(req.email)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    limiter.clear(req.email)
    return RegisterResponse(user=identity)


@router.post("/login", response_model=LoginResponse, summary="Log in")
def login(
    req: LoginRequest,
    identity_store: IdentityStoreDep,
    limiter: LoginLimiterDep,
) -> LoginResponse:
    """Login with email and password.

    Args:
        req: Login request with email and password.
        identity_store: Injected SqlIdentityStore instance.
        limiter: Login rate limiter.

    Returns:
        LoginResponse with user information and JWT token.

    Raises:
        HTTPException: 401 on bad credentials, 429 when rate limited.
    """
    _ensure_allowed(limiter, req.email)
    user = identity_store.authenticate(req.email, req.password)
    if user is None:
        limiter.record_attempt(req.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    limiter.clear(req.email)

    access_token = create_access_token(
        data={"sub": user.id, "role": user.role.value},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return LoginResponse(user=user, token=access_token)


@router.post("/logout", summary="Log out")
def logout() -> dict:
    """Logout endpoint.

    Note: Since we're using stateless JWT tokens, logout is handled
    client-side by removing the token. This endpoint exists for API
    consistency.

    Returns:
        Dictionary with success message.
    """
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=CurrentUserResponse, summary="Current user")
def get_current_user_info(
    current_user: User = Depends(get_current_user),
) -> CurrentUserResponse:
    return CurrentUserResponse(user=current_user)


@router.patch("/users/{user_id}/role", response_model=CurrentUserResponse, summary="Change a user's role")
def change_role(
    user_id: str,
    req: ChangeRoleRequest,
    identity_store: IdentityStoreDep,
    current_user: User = Depends(get_current_user),
) -> CurrentUserResponse:
    """Reassign another user's role.

    Args:
        user_id: Whose role changes.
        req: Request with the new role.
        identity_store: Injected SqlIdentityStore instance.
        current_user: Current authenticated user.

    Returns:
        CurrentUserResponse with the updated user.

    Raises:
        HTTPException: 403 if not permitted, 404 if the user does not exist.
    """
    try:
        user = identity_store.update_role(current_user, user_id, req.role)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return CurrentUserResponse(user=user)
