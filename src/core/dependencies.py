"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes. The
stores and services are request-scoped and share the request's DB session;
the rate limiters are process-wide singletons.
"""

from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from config import PROFILE_CHECK_DELAY_SECONDS
from core.database import get_db
from utils import class_manager
from utils import identity_store
from utils import invite_manager
from utils import parent_link
from utils import procedure_gateway
from utils import rate_limiter
from utils import registration
from utils import token_store
from utils import token_validator

# Singletons for RateLimiter (in-memory attempt counters)
_login_limiter_instance: Optional[rate_limiter.RateLimiter] = None
_validation_limiter_instance: Optional[rate_limiter.RateLimiter] = None
_registration_limiter_instance: Optional[rate_limiter.RateLimiter] = None


def get_token_store(db: Session = Depends(get_db)) -> token_store.SqlTokenStore:
    """Get SqlTokenStore instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        SqlTokenStore instance.
    """
    return token_store.SqlTokenStore(db)


def get_identity_store(db: Session = Depends(get_db)) -> identity_store.SqlIdentityStore:
    """Get SqlIdentityStore instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        SqlIdentityStore instance.
    """
    return identity_store.SqlIdentityStore(db)


def get_class_manager(db: Session = Depends(get_db)) -> class_manager.ClassManager:
    """Get ClassManager instance with request-scoped DB session."""
    return class_manager.ClassManager(db)


def get_procedure_gateway(
    db: Session = Depends(get_db),
) -> procedure_gateway.SqlProcedureGateway:
    return procedure_gateway.SqlProcedureGateway(db)


def get_token_validator(
    store: token_store.SqlTokenStore = Depends(get_token_store),
) -> token_validator.TokenValidator:
    return token_validator.TokenValidator(store)


def get_invite_manager(
    db: Session = Depends(get_db),
    classes: class_manager.ClassManager = Depends(get_class_manager),
) -> invite_manager.InviteManager:
    """Get InviteManager instance with request-scoped DB session."""
    return invite_manager.InviteManager(db, classes)


def get_registration_orchestrator(
    validator: token_validator.TokenValidator = Depends(get_token_validator),
    identities: identity_store.SqlIdentityStore = Depends(get_identity_store),
    tokens: token_store.SqlTokenStore = Depends(get_token_store),
    classes: class_manager.ClassManager = Depends(get_class_manager),
    gateway: procedure_gateway.SqlProcedureGateway = Depends(get_procedure_gateway),
) -> registration.RegistrationOrchestrator:
    """Get RegistrationOrchestrator wired to the SQL stores.

    Returns:
        RegistrationOrchestrator instance.
    """
    return registration.RegistrationOrchestrator(
        validator=validator,
        identity_store=identities,
        token_store=tokens,
        enrollment_store=classes,
        link_chain=parent_link.ParentLinkFallbackChain(gateway, tokens),
        profile_check_delay=PROFILE_CHECK_DELAY_SECONDS,
    )


def get_login_limiter() -> rate_limiter.RateLimiter:
    """Get the login RateLimiter singleton, keyed by email."""
    global _login_limiter_instance
    if _login_limiter_instance is None:
        _login_limiter_instance = rate_limiter.RateLimiter("login")
    return _login_limiter_instance


def get_validation_limiter() -> rate_limiter.RateLimiter:
    """Get the invite token validation RateLimiter singleton, keyed by client host."""
    global _validation_limiter_instance
    if _validation_limiter_instance is None:
        _validation_limiter_instance = rate_limiter.RateLimiter("invite-validation")
    return _validation_limiter_instance


def get_registration_limiter() -> rate_limiter.RateLimiter:
    """Get the registration RateLimiter singleton, keyed by email."""
    global _registration_limiter_instance
    if _registration_limiter_instance is None:
        _registration_limiter_instance = rate_limiter.RateLimiter("registration")
    return _registration_limiter_instance


# Type aliases for dependency injection
TokenStoreDep = Annotated[token_store.SqlTokenStore, Depends(get_token_store)]
IdentityStoreDep = Annotated[
    identity_store.SqlIdentityStore, Depends(get_identity_store)
]
ClassManagerDep = Annotated[class_manager.ClassManager, Depends(get_class_manager)]
TokenValidatorDep = Annotated[
    token_validator.TokenValidator, Depends(get_token_validator)
]
InviteManagerDep = Annotated[invite_manager.InviteManager, Depends(get_invite_manager)]
RegistrationOrchestratorDep = Annotated[
    registration.RegistrationOrchestrator, Depends(get_registration_orchestrator)
]
LoginLimiterDep = Annotated[rate_limiter.RateLimiter, Depends(get_login_limiter)]
ValidationLimiterDep = Annotated[
    rate_limiter.RateLimiter, Depends(get_validation_limiter)
]
RegistrationLimiterDep = Annotated[
    rate_limiter.RateLimiter, Depends(get_registration_limiter)
]
