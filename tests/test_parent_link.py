from unittest.mock import MagicMock

import pytest

from conftest import FIXED_NOW, days_from_fixed_now
from core.exceptions import ProcedureError, StoreError
from models.parent_invite import ParentInviteModel
from models.parent_student import ParentStudentModel
from schemas.procedure import EmptyResult, RecordResult, RowsResult
from utils.parent_link import (
    DIRECT_WRITE,
    LINK_FROM_INVITE,
    SIMPLE_LINK_PARENT,
    USE_PARENT_INVITE,
    ParentLinkFallbackChain,
)
from utils.procedure_gateway import SqlProcedureGateway
from utils.stores import ProcedureGateway, TokenStore
from utils.token_store import SqlTokenStore

FAILED = RecordResult(record={"success": False, "message": "nope"})


@pytest.fixture
def gateway():
    return MagicMock(spec=ProcedureGateway)


@pytest.fixture
def token_store():
    return MagicMock(spec=TokenStore)


@pytest.fixture
def chain(gateway, token_store):
    return ParentLinkFallbackChain(gateway, token_store, clock=lambda: FIXED_NOW)


def called_procedures(gateway):
    return [c.args[0] for c in gateway.call.call_args_list]


def test_primary_success_stops_the_chain(chain, gateway, token_store):
    gateway.call.return_value = RowsResult(rows=[{"success": True, "student_id": "S1"}])

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert result.linked
    assert result.strategy == USE_PARENT_INVITE
    assert result.student_id == "S1"
    gateway.call.assert_called_once_with(
        USE_PARENT_INVITE,
        {"p_code": "P-77", "p_parent_id": "parent-1"},
        caller_id="parent-1",
    )
    token_store.insert_parent_student_link.assert_not_called()


def test_primary_failure_moves_to_fallback_a(chain, gateway):
    gateway.call.side_effect = [
        FAILED,
        RowsResult(rows=[{"success": True, "message": "Linked", "student_id": "S1"}]),
    ]

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert result.strategy == LINK_FROM_INVITE
    assert called_procedures(gateway) == [USE_PARENT_INVITE, LINK_FROM_INVITE]
    assert gateway.call.call_args_list[1].kwargs["caller_id"] == "parent-1"


def test_exceptions_and_empty_results_escalate(chain, gateway):
    gateway.call.side_effect = [
        ProcedureError("boom"),
        EmptyResult(),
        RecordResult(record={"success": True, "parent_id": "parent-1", "student_id": "S1"}),
    ]

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert result.linked
    assert result.strategy == SIMPLE_LINK_PARENT
    assert result.attempted == [USE_PARENT_INVITE, LINK_FROM_INVITE, SIMPLE_LINK_PARENT]


def test_direct_write_is_the_last_resort(chain, gateway, token_store):
    gateway.call.return_value = FAILED
    token_store.find_parent_invite_by_code.return_value = {"code": "P-77", "student_id": "S1"}

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert result.strategy == DIRECT_WRITE
    assert gateway.call.call_count == 3
    token_store.insert_parent_student_link.assert_called_once_with("parent-1", "S1")
    token_store.update_parent_invite_usage.assert_called_once_with("P-77", "parent-1", FIXED_NOW)


@pytest.mark.parametrize("invite", [None, {"code": "P-77", "student_id": None}])
def test_direct_write_aborts_without_a_student(chain, gateway, token_store, invite):
    gateway.call.return_value = FAILED
    token_store.find_parent_invite_by_code.return_value = invite

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert not result.linked
    assert result.strategy is None
    assert len(result.attempted) == 4
    token_store.insert_parent_student_link.assert_not_called()
    token_store.update_parent_invite_usage.assert_not_called()


def test_failing_direct_write_leaves_parent_unlinked(chain, gateway, token_store):
    gateway.call.side_effect = RuntimeError("offline")
    token_store.find_parent_invite_by_code.return_value = {"student_id": "S1"}
    token_store.insert_parent_student_link.side_effect = StoreError("offline")

    result = chain.link_parent_to_student("parent-1", "P-77")

    assert not result.linked
    assert gateway.call.call_count == 3


class TestSqlProcedureGateway:
    @pytest.fixture
    def sql_gateway(self, db):
        return SqlProcedureGateway(db, clock=lambda: FIXED_NOW)

    def test_use_parent_invite_links_and_consumes(self, sql_gateway, add_parent_invite, db):
        invite = add_parent_invite("P-77", student_id="S1", school_id="school-1")

        result = sql_gateway.call(USE_PARENT_INVITE, {"p_code": "P-77", "p_parent_id": "parent-1"})

        assert isinstance(result, RowsResult)
        assert result.rows[0] == {
            "success": True,
            "message": "Parent linked to student",
            "student_id": "S1",
            "school_id": "school-1",
        }
        db.refresh(invite)
        assert invite.times_used == 1
        assert invite.parent_id == "parent-1"
        assert invite.used_at == FIXED_NOW.isoformat()
        assert db.query(ParentStudentModel).filter_by(parent_id="parent-1", student_id="S1").count() == 1

    def test_use_parent_invite_rejects_used_code(self, sql_gateway, add_parent_invite):
        add_parent_invite("P-77", times_used=1)
        result = sql_gateway.call(USE_PARENT_INVITE, {"p_code": "P-77", "p_parent_id": "parent-1"})
        assert result.rows[0]["success"] is False

    def test_expired_invite_is_rejected(self, sql_gateway, add_parent_invite):
        add_parent_invite("P-77", expires_at=days_from_fixed_now(-1))
        result = sql_gateway.call(SIMPLE_LINK_PARENT, {"p_code": "P-77"}, caller_id="parent-1")
        assert result == RecordResult(record={"success": False, "error": "Invalid or expired invite"})

    def test_simple_link_parent_needs_a_caller(self, sql_gateway, add_parent_invite):
        add_parent_invite("P-77")
        result = sql_gateway.call(SIMPLE_LINK_PARENT, {"p_code": "P-77"})
        assert result.record == {"success": False, "error": "Not authenticated"}

    def test_simple_link_parent_returns_a_record(self, sql_gateway, add_parent_invite):
        add_parent_invite("P-77", student_id="S1")
        result = sql_gateway.call(SIMPLE_LINK_PARENT, {"p_code": "P-77"}, caller_id="parent-1")
        assert result.record == {"success": True, "parent_id": "parent-1", "student_id": "S1"}

    def test_link_from_invite_reports_existing_link(self, sql_gateway, add_parent_invite, db):
        add_parent_invite("P-77", student_id="S1", times_used=1)
        db.add(ParentStudentModel(parent_id="parent-1", student_id="S1", created_at=FIXED_NOW.isoformat()))
        db.commit()

        result = sql_gateway.call(LINK_FROM_INVITE, {"p_invite_code": "P-77"}, caller_id="parent-1")

        assert result.rows[0]["success"] is True
        assert result.rows[0]["message"] == "Already linked"

    def test_unknown_procedure(self, sql_gateway):
        with pytest.raises(ProcedureError):
            sql_gateway.call("drop_everything", {})

    def test_full_chain_against_sql(self, db, add_parent_invite):
        add_parent_invite("P-77", student_id="S1")
        chain = ParentLinkFallbackChain(
            SqlProcedureGateway(db, clock=lambda: FIXED_NOW),
            SqlTokenStore(db),
            clock=lambda: FIXED_NOW,
        )

        result = chain.link_parent_to_student("parent-1", "P-77")

        assert result.strategy == USE_PARENT_INVITE
        invite = db.query(ParentInviteModel).filter_by(code="P-77").one()
        assert invite.times_used == invite.usage_limit
