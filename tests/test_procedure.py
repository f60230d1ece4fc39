import pytest

from core.exceptions import ProcedureError
from schemas.procedure import (
    EmptyResult,
    RecordResult,
    RowsResult,
    classify_payload,
    link_outcome,
)


@pytest.mark.parametrize("payload", [None, [], ()])
def test_nothing_is_empty(payload):
    assert isinstance(classify_payload(payload), EmptyResult)
    assert link_outcome(classify_payload(payload)).success is False


def test_bare_record():
    result = classify_payload({"success": True, "parent_id": "p1", "student_id": "S1"})
    assert isinstance(result, RecordResult)
    outcome = link_outcome(result)
    assert outcome.success is True
    assert outcome.student_id == "S1"


def test_singleton_row_list_uses_first_row():
    result = classify_payload([{"success": True, "message": "Linked", "student_id": 7}])
    assert isinstance(result, RowsResult)
    outcome = link_outcome(result)
    assert outcome.success is True
    assert outcome.message == "Linked"
    assert outcome.student_id == "7"


def test_error_field_is_used_as_message():
    outcome = link_outcome(classify_payload({"success": False, "error": "Not authenticated"}))
    assert outcome.success is False
    assert outcome.message == "Not authenticated"


def test_only_literal_true_counts_as_success():
    assert link_outcome(classify_payload({"success": "true"})).success is False
    assert link_outcome(classify_payload({})).success is False


@pytest.mark.parametrize("payload", ["ok", 1, [1, 2], [{"success": True}, "x"]])
def test_unknown_shapes_are_rejected(payload):
    with pytest.raises(ProcedureError):
        classify_payload(payload)
