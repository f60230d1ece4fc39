"""Invite-token registration.

RegistrationOrchestrator turns (email, password, invite token) into a new
identity. Only input validation, token validation and account creation can
fail a registration. Everything after account creation is bookkeeping: it
is logged when it fails and never undoes the created account.
"""

import logging
import time
from typing import Any, Dict, Optional

from core.exceptions import BookkeepingWarning, IdentityCreationError
from core.logging_config import mask_secret
from schemas.invite_token import InviteToken, StudentEnrollment
from schemas.user import Account, RegisteredIdentity
from utils.input_validation import validate_registration_input
from utils.parent_link import ParentLinkFallbackChain
from utils.stores import EnrollmentStore, IdentityStore, TokenStore
from utils.token_validator import TokenValidator

logger = logging.getLogger(__name__)


class RegistrationOrchestrator:
    """Registers users against invite tokens."""

    def __init__(
        self,
        validator: TokenValidator,
        identity_store: IdentityStore,
        token_store: TokenStore,
        enrollment_store: EnrollmentStore,
        link_chain: ParentLinkFallbackChain,
        profile_check_delay: Optional[float] = None,
    ):
        """Initialize RegistrationOrchestrator.

        Args:
            validator: Validates the presented token.
            identity_store: Creates the account.
            token_store: Records regular token usage.
            enrollment_store: Enrolls students into their token's class.
            link_chain: Links parents for "P-" codes.
            profile_check_delay: Seconds to wait before checking that the
                profile row exists. None or a negative value skips the
                check.
        """
        self.validator = validator
        self.identity_store = identity_store
        self.token_store = token_store
        self.enrollment_store = enrollment_store
        self.link_chain = link_chain
        self.profile_check_delay = profile_check_delay

    def register(
        self,
        email: str,
        password: str,
        invite_token: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> RegisteredIdentity:
        """Register a new user with an invite token.

        Args:
            email: Account email.
            password: Plain text password; must meet the password policy.
            invite_token: Regular token or "P-" parent invite code.
            first_name: Optional first name.
            last_name: Optional last name.

        Returns:
            RegisteredIdentity built from the token and the given values.

        Raises:
            ValidationError: If email, password or token are malformed.
            InvalidInviteTokenError: If the token cannot be used.
            IdentityCreationError: If the account cannot be created.
        """
        validate_registration_input(email, password, invite_token)
        invite = self.validator.validate(invite_token)

        metadata: Dict[str, Any] = {
            "role": invite.role.value,
            "school_id": invite.school_id,
            "first_name": first_name,
            "last_name": last_name,
            "invite_token": invite.token,
        }
        if isinstance(invite.payload, StudentEnrollment):
            metadata["class_id"] = invite.payload.class_id

        try:
            account = self.identity_store.create_account(email, password, metadata)
        except IdentityCreationError:
            logger.warning("Sign up failed for token %s", mask_secret(invite.token))
            raise
        logger.info(
            "Registered account %s as %s with token %s",
            account.id,
            invite.role.value,
            mask_secret(invite.token),
        )

        self._run_bookkeeping("profile check", self._check_profile, account)
        self._run_bookkeeping("token consumption", self._consume_token, invite, account)
        if invite.enrollment_class_id:
            self._run_bookkeeping("class enrollment", self._enroll, invite, account)

        return RegisteredIdentity(
            id=account.id,
            email=account.email,
            role=invite.role,
            school_id=invite.school_id,
            first_name=first_name,
            last_name=last_name,
        )

    def _run_bookkeeping(self, step: str, func, *args) -> None:
        try:
            func(*args)
        except Exception as e:
            warning = e if isinstance(e, BookkeepingWarning) else BookkeepingWarning(step, str(e))
            logger.warning("Registration bookkeeping failed: %s", warning, exc_info=True)

    def _check_profile(self, account: Account) -> None:
        if self.profile_check_delay is None or self.profile_check_delay < 0:
            return
        if self.profile_check_delay > 0:
            time.sleep(self.profile_check_delay)
        if self.identity_store.find_profile(account.id) is None:
            raise BookkeepingWarning("profile check", f"no profile row for {account.id}")

    def _consume_token(self, invite: InviteToken, account: Account) -> None:
        if invite.is_parent_invite:
            result = self.link_chain.link_parent_to_student(account.id, invite.token)
            if not result.linked:
                raise BookkeepingWarning(
                    "parent link", f"parent {account.id} left unlinked; admin must link manually"
                )
            return
        if not self.token_store.increment_usage(invite.token):
            raise BookkeepingWarning(
                "token consumption", f"usage of {mask_secret(invite.token)} was not recorded"
            )

    def _enroll(self, invite: InviteToken, account: Account) -> None:
        self.enrollment_store.enroll_student(invite.enrollment_class_id, account.id)
        logger.info("Enrolled %s into class %s", account.id, invite.enrollment_class_id)


def validate_invite_token(validator: TokenValidator, token: str) -> InviteToken:
    """Validate a token without consuming it."""
    return validator.validate(token)


def register_with_invite_token(
    orchestrator: RegistrationOrchestrator,
    email: str,
    password: str,
    invite_token: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> RegisteredIdentity:
    return orchestrator.register(email, password, invite_token, first_name, last_name)

