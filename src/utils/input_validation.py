"""Registration input checks that run before any store call."""

import re
from typing import Optional

from config import PASSWORD_MIN_LENGTH, PASSWORD_SPECIAL_CHARACTERS
from core.exceptions import ValidationError

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

_SPECIAL_PATTERN = re.compile("[" + re.escape(PASSWORD_SPECIAL_CHARACTERS) + "]")


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.fullmatch(email) is not None


def password_problem(password: str) -> Optional[str]:
    """Describe the first way a password breaks the strength policy.

    Returns:
        A user-facing message, or None if the password is acceptable.
    """
    if not password:
        return "Password cannot be empty"
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    if not _SPECIAL_PATTERN.search(password):
        return (
            "Password must contain at least one special character "
            f"({PASSWORD_SPECIAL_CHARACTERS})"
        )
    return None


def validate_registration_input(email: str, password: str, invite_token: str) -> None:
    """Check registration input, failing fast with a specific message.

    Raises:
        ValidationError: On a malformed email, weak password, or empty token.
    """
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    problem = password_problem(password)
    if problem is not None:
        raise ValidationError(problem)
    if not invite_token or not invite_token.strip():
        raise ValidationError("Invite token cannot be empty")
