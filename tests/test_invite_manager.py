import pytest

import utils.invite_manager as invite_manager_module
from conftest import FIXED_NOW, days_from_fixed_now
from core.exceptions import (
    InviteNotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
    ValidationError,
)
from models.invite_token import InviteTokenModel
from schemas.invite_token import StudentEnrollment
from schemas.role import Role
from utils.class_manager import ClassManager
from utils.invite_manager import InviteManager


@pytest.fixture
def manager(db):
    return InviteManager(db, ClassManager(db), clock=lambda: FIXED_NOW)


def test_principal_invites_teacher_for_own_school(manager, make_user):
    principal = make_user("bigadmin", school_id="school-1")

    token = manager.generate_invite_token(principal, Role.TEACHER, school_id=None, usage_limit=3)

    assert len(token.token) == 16
    assert token.token.isalnum()
    assert token.role == Role.TEACHER
    assert token.school_id == "school-1"
    assert token.usage_limit == 3
    assert token.created_by_user_id == principal.id
    assert (token.expires_at - FIXED_NOW).days == 30


def test_principal_cannot_invite_parents(manager, make_user):
    principal = make_user("bigadmin")
    with pytest.raises(PermissionDeniedError):
        manager.generate_invite_token(principal, Role.PARENT)


def test_cannot_invite_into_another_school(manager, make_user):
    admin = make_user("admin", school_id="school-1")
    with pytest.raises(PermissionDeniedError):
        manager.generate_invite_token(admin, Role.TEACHER, school_id="school-2")


def test_superadmin_chooses_the_school(manager, make_user):
    root = make_user("superadmin", school_id=None)
    token = manager.generate_invite_token(root, Role.BIGADMIN, school_id="school-9")
    assert token.school_id == "school-9"


def test_teacher_must_invite_students_into_own_class(manager, make_user, db):
    teacher = make_user("teacher")
    other_teacher = make_user("teacher")
    classes = ClassManager(db)
    mine = classes.create_class("Maths", school_id="school-1", teacher_id=teacher.id)
    theirs = classes.create_class("Art", school_id="school-1", teacher_id=other_teacher.id)

    with pytest.raises(ValidationError):
        manager.generate_invite_token(teacher, Role.STUDENT)
    with pytest.raises(PermissionDeniedError):
        manager.generate_invite_token(teacher, Role.STUDENT, class_id=theirs.id)

    token = manager.generate_invite_token(teacher, Role.STUDENT, class_id=mine.id, expires_in_days=7)
    assert token.payload == StudentEnrollment(class_id=mine.id)
    assert (token.expires_at - FIXED_NOW).days == 7


def test_class_only_applies_to_student_tokens(manager, make_user):
    admin = make_user("admin")
    with pytest.raises(ValidationError):
        manager.generate_invite_token(admin, Role.TEACHER, class_id="class-1")


def test_token_collision_is_retried(manager, make_user, add_token, db, monkeypatch):
    add_token("DUPLICATE0000001")
    db.expunge_all()
    candidates = iter(["DUPLICATE0000001", "FRESHTOKEN000002"])
    monkeypatch.setattr(invite_manager_module, "generate_token_string", lambda: next(candidates))
    admin = make_user("admin")

    token = manager.generate_invite_token(admin, Role.TEACHER)

    assert token.token == "FRESHTOKEN000002"
    assert db.query(InviteTokenModel).count() == 2


def test_parent_invite(manager, make_user):
    admin = make_user("admin", school_id="school-1")
    student = make_user("student", school_id="school-1")

    invite = manager.generate_parent_invite(admin, student.id)

    assert invite.token.startswith("P-")
    assert len(invite.token) == 18
    assert invite.role == Role.PARENT
    assert invite.linked_student_id == student.id
    assert invite.usage_limit == 1


def test_parent_invite_checks_the_student(manager, make_user):
    admin = make_user("admin", school_id="school-1")
    outsider = make_user("student", school_id="school-2")
    teacher = make_user("teacher", school_id="school-1")

    with pytest.raises(UserNotFoundError):
        manager.generate_parent_invite(admin, "missing")
    with pytest.raises(PermissionDeniedError):
        manager.generate_parent_invite(admin, outsider.id)
    with pytest.raises(ValidationError):
        manager.generate_parent_invite(admin, teacher.id)
    with pytest.raises(PermissionDeniedError):
        manager.generate_parent_invite(teacher, outsider.id)


def test_listing(manager, make_user):
    admin = make_user("admin", school_id="school-1")
    student = make_user("student", school_id="school-1")
    manager.generate_invite_token(admin, Role.TEACHER)
    manager.generate_parent_invite(admin, student.id)

    assert len(manager.list_created_tokens(admin)) == 2
    assert len(manager.list_school_tokens(admin, "school-1")) == 2
    with pytest.raises(PermissionDeniedError):
        manager.list_school_tokens(admin, "school-2")
    with pytest.raises(PermissionDeniedError):
        manager.list_school_tokens(student, "school-1")


def test_revoke(manager, make_user):
    admin = make_user("admin", school_id="school-1")
    teacher = make_user("teacher", school_id="school-1")
    outsider = make_user("admin", school_id="school-2")
    token = manager.generate_invite_token(admin, Role.TEACHER, usage_limit=5)

    with pytest.raises(PermissionDeniedError):
        manager.revoke_token(outsider, token.token)
    with pytest.raises(PermissionDeniedError):
        manager.revoke_token(teacher, token.token)
    with pytest.raises(InviteNotFoundError):
        manager.revoke_token(admin, "missing")

    revoked = manager.revoke_token(admin, token.token)
    assert revoked.times_used == revoked.usage_limit == 5
    assert not revoked.is_active


def test_creator_can_revoke_own_parent_invite(manager, make_user):
    admin = make_user("admin")
    student = make_user("student")
    invite = manager.generate_parent_invite(admin, student.id)

    revoked = manager.revoke_token(admin, invite.token)

    assert revoked.is_used


def test_cleanup_expired_tokens(manager, make_user, add_token, add_parent_invite):
    admin = make_user("admin", school_id="school-1")
    add_token("OLD", expires_at=days_from_fixed_now(-2))
    add_token("FRESH", expires_at=days_from_fixed_now(2))
    add_token("FOREVER")
    add_token("OTHERSCHOOL", school_id="school-2", expires_at=days_from_fixed_now(-2))
    add_parent_invite("P-OLD", expires_at=days_from_fixed_now(-1))

    assert manager.cleanup_expired_tokens(admin, "school-1") == 2
    remaining = {t.token for t in manager.list_school_tokens(admin, "school-1")}
    assert remaining == {"FRESH", "FOREVER"}
