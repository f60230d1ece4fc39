"""Interfaces to the persistence and auth collaborators.

The registration core only talks to these. SQL implementations live next
to the managers in this package; Supabase ones in utils.supabase_backend.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from schemas.procedure import ProcedureResult
from schemas.user import Account

Record = Dict[str, Any]


class TokenStore(ABC):
    """Regular invite tokens and parent invites."""

    @abstractmethod
    def find_by_token(self, token: str) -> Optional[Record]:
        """Return the invite_tokens record for token, or None."""

    @abstractmethod
    def increment_usage(self, token: str) -> bool:
        """Atomically add one use if the token is below its limit.

        Returns:
            True if a use was recorded, False if the token was missing or
            already exhausted.
        """

    @abstractmethod
    def find_parent_invite_by_code(self, code: str) -> Optional[Record]:
        """Return the parent_invites record for code, or None."""

    @abstractmethod
    def insert_parent_student_link(self, parent_id: str, student_id: str) -> None:
        """Create the parent-student relationship; an existing pair is kept."""

    @abstractmethod
    def update_parent_invite_usage(
        self, code: str, parent_id: str, used_at: datetime
    ) -> None:
        """Record that parent_id consumed the invite at used_at."""


class IdentityStore(ABC):
    """Account creation and profile lookups."""

    @abstractmethod
    def create_account(
        self, email: str, password: str, metadata: Mapping[str, Any]
    ) -> Account:
        """Create an account.

        Raises:
            IdentityCreationError: If the account cannot be created.
        """

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Id of the account this store last signed up or signed in."""

    @abstractmethod
    def find_profile(self, user_id: str) -> Optional[Record]:
        """Return the profile row for user_id, or None."""


class EnrollmentStore(ABC):
    @abstractmethod
    def enroll_student(self, class_id: str, student_id: str) -> None:
        """Insert a class enrollment row."""


class ProcedureGateway(ABC):
    """Named remote procedures that run with elevated privileges."""

    @abstractmethod
    def call(
        self,
        name: str,
        params: Mapping[str, Any],
        caller_id: Optional[str] = None,
    ) -> ProcedureResult:
        """Invoke a procedure and classify its payload.

        Args:
            name: Procedure name.
            params: Named parameters.
            caller_id: Identity the procedure acts as, for procedures that
                take the caller from context instead of a parameter.

        Raises:
            ProcedureError: Unknown procedure or unclassifiable payload.
        """
