"""Custom exception classes for the Classio API.

This module defines application-specific exceptions following Google Python
Style Guide.
"""

from typing import Optional


class ClassioError(Exception):
    """Base exception for all Classio errors."""

    pass


class ConfigurationError(ClassioError):
    """Raised when there is a configuration error."""

    pass


class ValidationError(ClassioError):
    """Raised when user input fails validation before any store call."""

    pass


class InvalidInviteTokenError(ClassioError):
    """Raised when an invite token is missing, expired, or exhausted.

    The message is always the same so callers cannot tell which
    condition failed.
    """

    MESSAGE = "Invalid invite token"

    def __init__(self):
        super().__init__(self.MESSAGE)


class IdentityCreationError(ClassioError):
    """Raised when the identity collaborator rejects account creation."""

    def __init__(self, reason: str):
        """Initialize the exception.

        Args:
            reason: Why the account could not be created.
        """
        self.reason = reason
        super().__init__(f"Sign up failed: {reason}")


class BookkeepingWarning(ClassioError):
    """Raised by post-registration bookkeeping steps.

    Never surfaced to the end user; the orchestrator logs it and moves on.
    """

    def __init__(self, step: str, detail: str):
        self.step = step
        self.detail = detail
        super().__init__(f"{step}: {detail}")


class StoreError(ClassioError):
    """Raised when a backing store call fails."""

    pass


class ProcedureError(ClassioError):
    """Raised for unknown procedures or unclassifiable procedure payloads."""

    pass


class PermissionDeniedError(ClassioError):
    """Raised when an actor is not allowed to perform an action."""

    pass


class InviteNotFoundError(ClassioError):
    """Raised when an invite token or parent invite cannot be found."""

    def __init__(self, token: str):
        self.token = token
        super().__init__("Invite not found")


class UserNotFoundError(ClassioError):
    """Raised when a requested profile cannot be found."""

    def __init__(self, user_id: str):
        """Initialize the exception.

        Args:
            user_id: The ID of the profile that was not found.
        """
        self.user_id = user_id
        super().__init__(f"User '{user_id}' not found")


class ClassNotFoundError(ClassioError):
    """Raised when a requested class cannot be found."""

    def __init__(self, class_id: str):
        self.class_id = class_id
        super().__init__(f"Class '{class_id}' not found")


class RateLimitExceededError(ClassioError):
    """Raised when a key has exhausted its attempts and is locked out."""

    def __init__(self, retry_after_seconds: Optional[float] = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__("Too many attempts. Please try again later.")
