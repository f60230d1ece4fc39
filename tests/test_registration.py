from unittest.mock import MagicMock

import pytest

from conftest import FIXED_NOW, STRONG_PASSWORD
from core.exceptions import (
    IdentityCreationError,
    InvalidInviteTokenError,
    StoreError,
    ValidationError,
)
from models.class_student import ClassStudentModel
from models.parent_invite import ParentInviteModel
from models.parent_student import ParentStudentModel
from schemas.procedure import ParentLinkResult, RecordResult, RowsResult
from schemas.role import Role
from schemas.user import Account
from utils.class_manager import ClassManager
from utils.identity_store import SqlIdentityStore
from utils.parent_link import LINK_FROM_INVITE, USE_PARENT_INVITE, ParentLinkFallbackChain
from utils.procedure_gateway import SqlProcedureGateway
from utils.registration import RegistrationOrchestrator, register_with_invite_token
from utils.stores import EnrollmentStore, IdentityStore, ProcedureGateway, TokenStore
from utils.token_store import SqlTokenStore
from utils.token_validator import TokenValidator


@pytest.fixture
def sql_orchestrator(db):
    tokens = SqlTokenStore(db)
    return RegistrationOrchestrator(
        validator=TokenValidator(tokens, clock=lambda: FIXED_NOW),
        identity_store=SqlIdentityStore(db),
        token_store=tokens,
        enrollment_store=ClassManager(db),
        link_chain=ParentLinkFallbackChain(
            SqlProcedureGateway(db, clock=lambda: FIXED_NOW), tokens, clock=lambda: FIXED_NOW
        ),
        profile_check_delay=0,
    )


class FakeStores:
    """Mocked collaborators for orchestrator tests that never touch a database."""

    def __init__(self, invite_record=None, parent_record=None):
        self.token_store = MagicMock(spec=TokenStore)
        self.token_store.find_by_token.return_value = invite_record
        self.token_store.find_parent_invite_by_code.return_value = parent_record
        self.token_store.increment_usage.return_value = True
        self.identity_store = MagicMock(spec=IdentityStore)
        self.identity_store.create_account.side_effect = lambda email, password, metadata: Account(
            id="user-1", email=email, metadata=dict(metadata)
        )
        self.enrollment_store = MagicMock(spec=EnrollmentStore)
        self.gateway = MagicMock(spec=ProcedureGateway)
        self.link_chain = ParentLinkFallbackChain(self.gateway, self.token_store)

    def orchestrator(self, profile_check_delay=None):
        return RegistrationOrchestrator(
            validator=TokenValidator(self.token_store, clock=lambda: FIXED_NOW),
            identity_store=self.identity_store,
            token_store=self.token_store,
            enrollment_store=self.enrollment_store,
            link_chain=self.link_chain,
            profile_check_delay=profile_check_delay,
        )


def student_record(**overrides):
    record = {
        "token": "STUDENT1",
        "role": "student",
        "school_id": "school-1",
        "specific_class_id": "class-1",
        "times_used": 0,
        "usage_limit": 1,
        "expires_at": None,
        "created_at": FIXED_NOW.isoformat(),
    }
    record.update(overrides)
    return record


def test_teacher_token_can_only_be_used_once(sql_orchestrator, add_token):
    add_token("T1", role="teacher", usage_limit=1)

    assert sql_orchestrator.validator.validate("T1").role == Role.TEACHER
    identity = sql_orchestrator.register("first@example.com", STRONG_PASSWORD, "T1")

    assert identity.role == Role.TEACHER
    assert identity.school_id == "school-1"
    with pytest.raises(InvalidInviteTokenError):
        sql_orchestrator.register("second@example.com", STRONG_PASSWORD, "T1")


def test_student_registration_enrolls_into_class(sql_orchestrator, add_token, db):
    physics = ClassManager(db).create_class("Physics", school_id="school-1")
    add_token("S1", role="student", class_id=physics.id, usage_limit=10)

    identity = sql_orchestrator.register(
        "Kid@Example.com", STRONG_PASSWORD, "S1", first_name="Ada", last_name="L"
    )

    assert identity.email == "kid@example.com"
    assert identity.first_name == "Ada"
    enrollment = db.query(ClassStudentModel).filter_by(student_id=identity.id).one()
    assert enrollment.class_id == physics.id


def test_parent_registration_links_to_student(sql_orchestrator, add_parent_invite, db):
    add_parent_invite("P-77", student_id="S1")

    identity = sql_orchestrator.register("mum@example.com", STRONG_PASSWORD, "P-77")

    assert identity.role == Role.PARENT
    link = db.query(ParentStudentModel).filter_by(parent_id=identity.id).one()
    assert link.student_id == "S1"
    invite = db.query(ParentInviteModel).filter_by(code="P-77").one()
    assert invite.times_used == 1
    assert db.query(ClassStudentModel).count() == 0


def test_duplicate_email_fails_sign_up(sql_orchestrator, add_token):
    add_token("T1", usage_limit=5)
    sql_orchestrator.register("dup@example.com", STRONG_PASSWORD, "T1")

    with pytest.raises(IdentityCreationError, match="Sign up failed"):
        sql_orchestrator.register("DUP@example.com", STRONG_PASSWORD, "T1")


def test_weak_password_fails_before_any_store_call():
    fakes = FakeStores(invite_record=student_record())

    with pytest.raises(ValidationError):
        fakes.orchestrator().register("kid@example.com", "abc", "STUDENT1")

    assert fakes.token_store.method_calls == []
    assert fakes.identity_store.method_calls == []
    assert fakes.enrollment_store.method_calls == []
    assert fakes.gateway.method_calls == []


@pytest.mark.parametrize(
    "email, token",
    [("not-an-email", "STUDENT1"), ("kid@example.com", "  ")],
)
def test_bad_input_fails_fast(email, token):
    fakes = FakeStores(invite_record=student_record())
    with pytest.raises(ValidationError):
        fakes.orchestrator().register(email, STRONG_PASSWORD, token)
    assert fakes.identity_store.create_account.call_count == 0


def test_enrollment_failure_does_not_fail_registration():
    fakes = FakeStores(invite_record=student_record())
    fakes.enrollment_store.enroll_student.side_effect = StoreError("insert failed")

    identity = fakes.orchestrator().register("kid@example.com", STRONG_PASSWORD, "STUDENT1")

    assert identity.role == Role.STUDENT
    assert identity.school_id == "school-1"
    fakes.enrollment_store.enroll_student.assert_called_once_with("class-1", "user-1")


def test_sign_up_metadata_carries_token_context():
    fakes = FakeStores(invite_record=student_record())

    fakes.orchestrator().register("kid@example.com", STRONG_PASSWORD, "STUDENT1", "Ada", "L")

    _, _, metadata = fakes.identity_store.create_account.call_args.args
    assert metadata == {
        "role": "student",
        "school_id": "school-1",
        "first_name": "Ada",
        "last_name": "L",
        "invite_token": "STUDENT1",
        "class_id": "class-1",
    }


def test_token_accounting_failures_are_swallowed():
    fakes = FakeStores(invite_record=student_record(specific_class_id=None))
    fakes.token_store.increment_usage.side_effect = StoreError("timeout")

    identity = fakes.orchestrator().register("kid@example.com", STRONG_PASSWORD, "STUDENT1")

    assert identity.id == "user-1"
    fakes.enrollment_store.enroll_student.assert_not_called()


def test_missing_profile_is_only_logged(caplog):
    fakes = FakeStores(invite_record=student_record())
    fakes.identity_store.find_profile.return_value = None

    identity = fakes.orchestrator(profile_check_delay=0).register(
        "kid@example.com", STRONG_PASSWORD, "STUDENT1"
    )

    assert identity.id == "user-1"
    fakes.identity_store.find_profile.assert_called_once_with("user-1")
    assert "no profile row" in caplog.text


def test_parent_token_escalates_to_fallback_a():
    fakes = FakeStores(parent_record={"code": "P-77", "student_id": "S1", "times_used": 0, "usage_limit": 1})
    fakes.gateway.call.side_effect = [
        RecordResult(record={"success": False}),
        RowsResult(rows=[{"success": True, "student_id": "S1"}]),
    ]

    identity = fakes.orchestrator().register("dad@example.com", STRONG_PASSWORD, "P-77")

    assert identity.role == Role.PARENT
    assert [c.args[0] for c in fakes.gateway.call.call_args_list] == [
        USE_PARENT_INVITE,
        LINK_FROM_INVITE,
    ]
    fakes.token_store.increment_usage.assert_not_called()


def test_unlinked_parent_still_registers():
    fakes = FakeStores(parent_record={"code": "P-77", "student_id": "S1"})
    fakes.link_chain = MagicMock(spec=ParentLinkFallbackChain)
    fakes.link_chain.link_parent_to_student.return_value = ParentLinkResult(linked=False)

    identity = fakes.orchestrator().register("dad@example.com", STRONG_PASSWORD, "P-77")

    assert identity.role == Role.PARENT
    fakes.link_chain.link_parent_to_student.assert_called_once_with("user-1", "P-77")


def test_register_with_invite_token_delegates():
    fakes = FakeStores(invite_record=student_record())
    identity = register_with_invite_token(
        fakes.orchestrator(), "kid@example.com", STRONG_PASSWORD, "STUDENT1"
    )
    assert identity.email == "kid@example.com"
