"""Procedure result schema definitions.

Remote linking procedures answer in one of three shapes: a single record,
a list of rows, or nothing. The gateway classifies the raw payload once
into the tagged union below, and link_outcome() turns any member of it into
a LinkOutcome.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from core.exceptions import ProcedureError


class RecordResult(BaseModel):
    kind: Literal["record"] = "record"
    record: Dict[str, Any]


class RowsResult(BaseModel):
    kind: Literal["rows"] = "rows"
    rows: List[Dict[str, Any]] = Field(min_length=1)


class EmptyResult(BaseModel):
    kind: Literal["empty"] = "empty"


ProcedureResult = Union[RecordResult, RowsResult, EmptyResult]


class LinkOutcome(BaseModel):
    """Normalized answer of one linking strategy."""

    success: bool = False
    message: Optional[str] = None
    student_id: Optional[str] = None


def classify_payload(payload: Any) -> ProcedureResult:
    """Classify a raw procedure payload.

    Args:
        payload: Whatever the procedure returned: a mapping, a list of
            mappings, an empty list, or None.

    Returns:
        The matching ProcedureResult member.

    Raises:
        ProcedureError: If the payload has none of the known shapes.
    """
    if payload is None:
        return EmptyResult()
    if isinstance(payload, dict):
        return RecordResult(record=payload)
    if isinstance(payload, (list, tuple)):
        if not payload:
            return EmptyResult()
        if all(isinstance(row, dict) for row in payload):
            return RowsResult(rows=list(payload))
    raise ProcedureError(f"Unexpected procedure payload type: {type(payload).__name__}")


def _outcome_from_record(record: Dict[str, Any]) -> LinkOutcome:
    student_id = record.get("student_id")
    return LinkOutcome(
        success=record.get("success") is True,
        message=record.get("message") or record.get("error"),
        student_id=str(student_id) if student_id is not None else None,
    )


def link_outcome(result: ProcedureResult) -> LinkOutcome:
    """Turn a classified procedure result into a LinkOutcome.

    Rows results use their first row. Empty results are failures.
    """
    if isinstance(result, RecordResult):
        return _outcome_from_record(result.record)
    if isinstance(result, RowsResult):
        return _outcome_from_record(result.rows[0])
    if isinstance(result, EmptyResult):
        return LinkOutcome(success=False, message="Procedure returned no result")
    raise ProcedureError(f"Unknown procedure result: {result!r}")


class ParentLinkResult(BaseModel):
    """How a parent-student linking attempt ended."""

    linked: bool
    strategy: Optional[str] = None
    student_id: Optional[str] = None
    attempted: List[str] = Field(default_factory=list)
