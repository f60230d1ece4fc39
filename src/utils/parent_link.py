"""Parent-to-student linking for "P-" invite codes.

Linking escalates through increasingly primitive mechanisms, each tried at
most once:

1. use_parent_invite(p_code, p_parent_id), the privileged primary procedure.
2. link_parent_to_student_from_invite(p_invite_code), acting as the caller.
3. simple_link_parent(p_code), acting as the caller.
4. Direct writes: read the invite's student, insert the link row, then
   record the invite usage.

A strategy that raises counts the same as one that reports failure. When
every strategy fails the parent stays registered but unlinked, and an admin
has to link them by hand.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import pytz

from core.logging_config import mask_secret
from schemas.procedure import LinkOutcome, ParentLinkResult, link_outcome
from utils.stores import ProcedureGateway, TokenStore

logger = logging.getLogger(__name__)

USE_PARENT_INVITE = "use_parent_invite"
LINK_FROM_INVITE = "link_parent_to_student_from_invite"
SIMPLE_LINK_PARENT = "simple_link_parent"
DIRECT_WRITE = "direct_write"


class ParentLinkFallbackChain:
    """Links a newly registered parent to the student named by their invite."""

    def __init__(
        self,
        gateway: ProcedureGateway,
        token_store: TokenStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.token_store = token_store
        self.clock = clock or (lambda: datetime.now(pytz.utc))

    def _strategies(self) -> List[Tuple[str, Callable[[str, str], LinkOutcome]]]:
        return [
            (USE_PARENT_INVITE, self._use_parent_invite),
            (LINK_FROM_INVITE, self._link_from_invite),
            (SIMPLE_LINK_PARENT, self._simple_link_parent),
            (DIRECT_WRITE, self._direct_write),
        ]

    def link_parent_to_student(self, parent_id: str, invite_code: str) -> ParentLinkResult:
        """Run the strategies in order until one reports success.

        Args:
            parent_id: Id of the registered parent.
            invite_code: The "P-" code they registered with.

        Returns:
            ParentLinkResult describing which strategy linked them, if any.
        """
        attempted: List[str] = []
        for name, strategy in self._strategies():
            attempted.append(name)
            try:
                outcome = strategy(parent_id, invite_code)
            except Exception:
                logger.warning(
                    "Parent link strategy %s raised for invite %s",
                    name,
                    mask_secret(invite_code),
                    exc_info=True,
                )
                continue

            if outcome.success:
                logger.info(
                    "Linked parent %s to student %s via %s",
                    parent_id,
                    outcome.student_id,
                    name,
                )
                return ParentLinkResult(
                    linked=True,
                    strategy=name,
                    student_id=outcome.student_id,
                    attempted=attempted,
                )
            logger.warning(
                "Parent link strategy %s failed for invite %s: %s",
                name,
                mask_secret(invite_code),
                outcome.message,
            )

        logger.error(
            "All parent link strategies failed for parent %s (invite %s); "
            "an admin must link them manually",
            parent_id,
            mask_secret(invite_code),
        )
        return ParentLinkResult(linked=False, attempted=attempted)

    def _use_parent_invite(self, parent_id: str, code: str) -> LinkOutcome:
        result = self.gateway.call(
            USE_PARENT_INVITE,
            {"p_code": code, "p_parent_id": parent_id},
            caller_id=parent_id,
        )
        return link_outcome(result)

    def _link_from_invite(self, parent_id: str, code: str) -> LinkOutcome:
        result = self.gateway.call(
            LINK_FROM_INVITE, {"p_invite_code": code}, caller_id=parent_id
        )
        return link_outcome(result)

    def _simple_link_parent(self, parent_id: str, code: str) -> LinkOutcome:
        result = self.gateway.call(SIMPLE_LINK_PARENT, {"p_code": code}, caller_id=parent_id)
        return link_outcome(result)

    def _direct_write(self, parent_id: str, code: str) -> LinkOutcome:
        invite = self.token_store.find_parent_invite_by_code(code)
        if invite is None:
            return LinkOutcome(success=False, message="Invite not found")
        student_id = invite.get("student_id")
        if not student_id:
            return LinkOutcome(success=False, message="No student_id in invite")

        self.token_store.insert_parent_student_link(parent_id, str(student_id))
        self.token_store.update_parent_invite_usage(code, parent_id, self.clock())
        return LinkOutcome(
            success=True,
            message="Linked by direct write",
            student_id=str(student_id),
        )
