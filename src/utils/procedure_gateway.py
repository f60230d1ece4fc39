"""SQL renditions of the parent linking procedures.

Each handler answers in the shape its hosted counterpart does: the first two
return a list of rows, simple_link_parent returns a single record. The
gateway classifies the raw answer before handing it back.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytz
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ProcedureError
from models.parent_invite import ParentInviteModel
from models.parent_student import ParentStudentModel
from schemas.procedure import ProcedureResult, classify_payload
from utils.converters import parse_timestamp
from utils.stores import ProcedureGateway

logger = logging.getLogger(__name__)

Handler = Callable[[Mapping[str, Any], Optional[str]], Any]


class SqlProcedureGateway(ProcedureGateway):
    """Runs the linking procedures against the local database."""

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or (lambda: datetime.now(pytz.utc))
        self._handlers: Dict[str, Handler] = {
            "use_parent_invite": self._use_parent_invite,
            "link_parent_to_student_from_invite": self._link_from_invite,
            "simple_link_parent": self._simple_link_parent,
        }

    def call(
        self,
        name: str,
        params: Mapping[str, Any],
        caller_id: Optional[str] = None,
    ) -> ProcedureResult:
        handler = self._handlers.get(name)
        if handler is None:
            raise ProcedureError(f"Unknown procedure: {name}")
        logger.debug("Calling procedure %s as %s", name, caller_id)
        try:
            raw = handler(params, caller_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Procedure %s failed: %s", name, e)
            raw = [{"success": False, "message": str(e)}]
        return classify_payload(raw)

    def _find_usable_invite(self, code: Optional[str]) -> Optional[ParentInviteModel]:
        if not code:
            return None
        invite = (
            self.db.query(ParentInviteModel)
            .filter(ParentInviteModel.code == code)
            .first()
        )
        if invite is None or invite.times_used >= invite.usage_limit:
            return None
        expires_at = parse_timestamp(invite.expires_at)
        if expires_at is not None and expires_at < self.clock():
            return None
        return invite

    def _link_exists(self, parent_id: str, student_id: str) -> bool:
        return (
            self.db.query(ParentStudentModel)
            .filter(
                ParentStudentModel.parent_id == parent_id,
                ParentStudentModel.student_id == student_id,
            )
            .first()
            is not None
        )

    def _link_and_consume(self, invite: ParentInviteModel, parent_id: str) -> bool:
        """Consume one use of invite and link parent_id in one transaction.

        Returns:
            False if a concurrent caller took the last use first.
        """
        now = self.clock().isoformat()
        result = self.db.execute(
            update(ParentInviteModel)
            .where(
                ParentInviteModel.id == invite.id,
                ParentInviteModel.times_used < ParentInviteModel.usage_limit,
            )
            .values(
                times_used=ParentInviteModel.times_used + 1,
                parent_id=parent_id,
                used_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return False
        if not self._link_exists(parent_id, invite.student_id):
            self.db.add(
                ParentStudentModel(
                    parent_id=parent_id,
                    student_id=invite.student_id,
                    relationship="parent",
                    created_at=now,
                )
            )
        self.db.commit()
        return True

    def _use_parent_invite(self, params: Mapping[str, Any], caller_id: Optional[str]) -> List[dict]:
        parent_id = params.get("p_parent_id")
        if not parent_id:
            return [{"success": False, "message": "Parent id is required"}]
        invite = self._find_usable_invite(params.get("p_code"))
        if invite is None or not invite.student_id:
            return [{"success": False, "message": "Invalid or expired invite code"}]
        if not self._link_and_consume(invite, parent_id):
            return [{"success": False, "message": "Invite code already used"}]
        return [
            {
                "success": True,
                "message": "Parent linked to student",
                "student_id": invite.student_id,
                "school_id": invite.school_id,
            }
        ]

    def _link_from_invite(self, params: Mapping[str, Any], caller_id: Optional[str]) -> List[dict]:
        if not caller_id:
            return [{"success": False, "message": "Not authenticated"}]
        code = params.get("p_invite_code")
        invite = (
            self.db.query(ParentInviteModel)
            .filter(ParentInviteModel.code == code)
            .first()
        )
        if invite is not None and invite.student_id and self._link_exists(caller_id, invite.student_id):
            return [{"success": True, "message": "Already linked", "student_id": invite.student_id}]

        invite = self._find_usable_invite(code)
        if invite is None or not invite.student_id:
            return [{"success": False, "message": "Invalid or expired invite code"}]
        if not self._link_and_consume(invite, caller_id):
            return [{"success": False, "message": "Invite code already used"}]
        return [{"success": True, "message": "Linked", "student_id": invite.student_id}]

    def _simple_link_parent(self, params: Mapping[str, Any], caller_id: Optional[str]) -> dict:
        if not caller_id:
            return {"success": False, "error": "Not authenticated"}
        invite = self._find_usable_invite(params.get("p_code"))
        if invite is None or not invite.student_id:
            return {"success": False, "error": "Invalid or expired invite"}
        if not self._link_and_consume(invite, caller_id):
            return {"success": False, "error": "Invalid or expired invite"}
        return {"success": True, "parent_id": caller_id, "student_id": invite.student_id}
