"""Invite token validation.

Validation is a pure read: it never consumes a token, so it can be called
to preview a token before registration and safely retried.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import pytz

from core.exceptions import InvalidInviteTokenError, StoreError
from core.logging_config import mask_secret
from schemas.invite_token import InviteToken, is_parent_invite_code
from utils.converters import parent_invite_from_record, token_from_record
from utils.stores import TokenStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(pytz.utc)


class TokenValidator:
    """Looks up and checks regular and parent invite tokens."""

    def __init__(
        self,
        token_store: TokenStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize TokenValidator.

        Args:
            token_store: Where tokens and parent invites are read from.
            clock: Returns the current time; defaults to UTC now.
        """
        self.token_store = token_store
        self.clock = clock or _utc_now

    def validate(self, token: str) -> InviteToken:
        """Validate a token string and return its normalized form.

        "P-" prefixed codes are read from the parent invite store; anything
        else from the regular token store. Not found, exhausted and expired
        all fail the same way.

        Args:
            token: The token string presented by the caller.

        Returns:
            The normalized InviteToken.

        Raises:
            InvalidInviteTokenError: If the token cannot be used.
        """
        token = (token or "").strip()
        if not token:
            raise InvalidInviteTokenError()

        try:
            if is_parent_invite_code(token):
                invite = self._load_parent_invite(token)
            else:
                invite = self._load_token(token)
        except StoreError:
            logger.exception("Store error while validating %s", mask_secret(token))
            raise InvalidInviteTokenError() from None
        except ValueError as e:
            logger.warning("Malformed invite record for %s: %s", mask_secret(token), e)
            raise InvalidInviteTokenError() from None

        if invite is None:
            logger.info("Invite token %s not found", mask_secret(token))
            raise InvalidInviteTokenError()
        if not invite.is_active:
            logger.info(
                "Invite token %s reached its usage limit (%d/%d)",
                mask_secret(token),
                invite.times_used,
                invite.usage_limit,
            )
            raise InvalidInviteTokenError()
        if invite.is_expired_at(self.clock()):
            logger.info("Invite token %s expired at %s", mask_secret(token), invite.expires_at)
            raise InvalidInviteTokenError()

        logger.debug("Invite token %s validated for role %s", mask_secret(token), invite.role.value)
        return invite

    def _load_token(self, token: str) -> Optional[InviteToken]:
        record = self.token_store.find_by_token(token)
        if record is None:
            return None
        return token_from_record(record)

    def _load_parent_invite(self, code: str) -> Optional[InviteToken]:
        record = self.token_store.find_parent_invite_by_code(code)
        if record is None:
            return None
        return parent_invite_from_record(record)
