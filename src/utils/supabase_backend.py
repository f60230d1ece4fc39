"""Supabase implementations of the registration stores.

Tables mirror the SQL models: invite_tokens, parent_invites,
parent_student, profiles and class_students. Profiles are created by a
database trigger on sign-up, so the profile check in the orchestrator is
meaningful here and should be given a small delay.
"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from supabase import Client, ClientOptions, create_client

from config import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    PROFILE_CHECK_DELAY_SECONDS,
    SUPABASE_KEY,
    SUPABASE_URL,
)
from core.exceptions import ConfigurationError, IdentityCreationError, StoreError
from core.logging_config import mask_secret
from schemas.procedure import ProcedureResult, classify_payload
from schemas.user import Account
from utils.parent_link import ParentLinkFallbackChain
from utils.registration import RegistrationOrchestrator
from utils.stores import EnrollmentStore, IdentityStore, ProcedureGateway, Record, TokenStore
from utils.token_validator import TokenValidator

logger = logging.getLogger(__name__)


def create_supabase_client(
    url: Optional[str] = SUPABASE_URL,
    key: Optional[str] = SUPABASE_KEY,
) -> Client:
    """Create a Supabase client with a bounded per-call timeout.

    Raises:
        ConfigurationError: If the URL or key is missing.
    """
    if not url or not key:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY must be set")
    options = ClientOptions(postgrest_client_timeout=EXTERNAL_CALL_TIMEOUT_SECONDS)
    return create_client(url, key, options=options)


def _first(data: Any) -> Optional[Record]:
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


class SupabaseTokenStore(TokenStore):
    def __init__(self, client: Client):
        self.client = client

    def _select_one(self, table: str, column: str, value: str) -> Optional[Record]:
        try:
            response = (
                self.client.table(table).select("*").eq(column, value).limit(1).execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to read {table}: {e}") from e
        return _first(response.data)

    def find_by_token(self, token: str) -> Optional[Record]:
        return self._select_one("invite_tokens", "token", token)

    def increment_usage(self, token: str) -> bool:
        """Compare-and-set times_used from its current value to one more.

        The update only matches if no one else changed times_used since it
        was read, so a lost race returns False instead of double counting.
        """
        record = self.find_by_token(token)
        if record is None:
            return False
        times_used = record.get("times_used") or 0
        if times_used >= (record.get("usage_limit") or 1):
            logger.warning("Invite token %s already exhausted", mask_secret(token))
            return False
        try:
            response = (
                self.client.table("invite_tokens")
                .update({"times_used": times_used + 1})
                .eq("token", token)
                .eq("times_used", times_used)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to record invite token usage: {e}") from e
        if not response.data:
            logger.warning("Concurrent use of invite token %s", mask_secret(token))
            return False
        return True

    def find_parent_invite_by_code(self, code: str) -> Optional[Record]:
        return self._select_one("parent_invites", "code", code)

    def insert_parent_student_link(self, parent_id: str, student_id: str) -> None:
        try:
            self.client.table("parent_student").upsert(
                {"parent_id": parent_id, "student_id": student_id, "relationship": "parent"},
                on_conflict="parent_id,student_id",
            ).execute()
        except Exception as e:
            raise StoreError(f"Failed to link parent to student: {e}") from e

    def update_parent_invite_usage(
        self, code: str, parent_id: str, used_at: datetime
    ) -> None:
        record = self.find_parent_invite_by_code(code)
        if record is None:
            raise StoreError("Parent invite not found")
        times_used = record.get("times_used") or 0
        if times_used >= (record.get("usage_limit") or 1):
            logger.warning("Parent invite %s already at its usage limit", mask_secret(code))
            return
        try:
            self.client.table("parent_invites").update(
                {
                    "times_used": times_used + 1,
                    "parent_id": parent_id,
                    "used_at": used_at.isoformat(),
                }
            ).eq("code", code).eq("times_used", times_used).execute()
        except Exception as e:
            raise StoreError(f"Failed to update parent invite: {e}") from e


class SupabaseIdentityStore(IdentityStore):
    def __init__(self, client: Client):
        self.client = client

    def create_account(
        self, email: str, password: str, metadata: Mapping[str, Any]
    ) -> Account:
        try:
            response = self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": dict(metadata)},
                }
            )
        except Exception as e:
            raise IdentityCreationError(str(e)) from e
        if response.user is None:
            raise IdentityCreationError("No user returned")
        return Account(
            id=response.user.id,
            email=response.user.email or email,
            metadata=dict(metadata),
        )

    def current_user_id(self) -> Optional[str]:
        try:
            response = self.client.auth.get_user()
        except Exception as e:
            logger.warning("Could not read the signed-in user: %s", e)
            return None
        if response is None or response.user is None:
            return None
        return response.user.id

    def find_profile(self, user_id: str) -> Optional[Record]:
        try:
            response = (
                self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to look up profile: {e}") from e
        return _first(response.data)


class SupabaseEnrollmentStore(EnrollmentStore):
    def __init__(self, client: Client):
        self.client = client

    def enroll_student(self, class_id: str, student_id: str) -> None:
        try:
            self.client.table("class_students").upsert(
                {"class_id": class_id, "student_id": student_id},
                on_conflict="class_id,student_id",
            ).execute()
        except Exception as e:
            raise StoreError(f"Failed to enroll student: {e}") from e


class SupabaseProcedureGateway(ProcedureGateway):
    """Calls Postgres functions through PostgREST RPC.

    Procedures that read the caller from context see the session of the
    client, which is the account signed up last. caller_id is checked
    against it and a mismatch is logged.
    """

    def __init__(self, client: Client, identity_store: Optional[SupabaseIdentityStore] = None):
        self.client = client
        self.identity_store = identity_store

    def call(
        self,
        name: str,
        params: Mapping[str, Any],
        caller_id: Optional[str] = None,
    ) -> ProcedureResult:
        if caller_id and self.identity_store is not None:
            session_user = self.identity_store.current_user_id()
            if session_user != caller_id:
                logger.warning(
                    "Procedure %s called for %s but the session belongs to %s",
                    name,
                    caller_id,
                    session_user,
                )
        response = self.client.rpc(name, dict(params)).execute()
        return classify_payload(response.data)


def build_supabase_orchestrator(client: Optional[Client] = None) -> RegistrationOrchestrator:
    """Wire a RegistrationOrchestrator against Supabase."""
    client = client or create_supabase_client()
    token_store = SupabaseTokenStore(client)
    identity_store = SupabaseIdentityStore(client)
    gateway = SupabaseProcedureGateway(client, identity_store)
    return RegistrationOrchestrator(
        validator=TokenValidator(token_store),
        identity_store=identity_store,
        token_store=token_store,
        enrollment_store=SupabaseEnrollmentStore(client),
        link_chain=ParentLinkFallbackChain(gateway, token_store),
        profile_check_delay=PROFILE_CHECK_DELAY_SECONDS,
    )
