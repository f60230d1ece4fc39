import os

# Must be set before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy.orm import sessionmaker

from core.database import build_engine, init_db
from models.invite_token import InviteTokenModel
from models.parent_invite import ParentInviteModel
from schemas.user import User
from utils.identity_store import SqlIdentityStore

STRONG_PASSWORD = "Str0ng!Passw0rd"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=pytz.utc)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def add_token(db):
    """Insert an invite_tokens row."""

    def _add(token, role="teacher", school_id="school-1", class_id=None,
             times_used=0, usage_limit=1, expires_at=None, created_by=None):
        model = InviteTokenModel(
            token=token,
            role=role,
            school_id=school_id,
            specific_class_id=class_id,
            created_by_user_id=created_by,
            times_used=times_used,
            usage_limit=usage_limit,
            created_at=FIXED_NOW.isoformat(),
            expires_at=expires_at,
        )
        db.add(model)
        db.commit()
        return model

    return _add


@pytest.fixture
def add_parent_invite(db):
    """Insert a parent_invites row."""

    def _add(code, student_id="student-1", school_id="school-1",
             times_used=0, usage_limit=1, expires_at=None, created_by=None):
        model = ParentInviteModel(
            code=code,
            student_id=student_id,
            school_id=school_id,
            times_used=times_used,
            usage_limit=usage_limit,
            created_by=created_by,
            created_at=FIXED_NOW.isoformat(),
            expires_at=expires_at,
        )
        db.add(model)
        db.commit()
        return model

    return _add


@pytest.fixture
def make_user(db):
    """Create a profile with the given role and return it as a User."""
    store = SqlIdentityStore(db)
    counter = {"n": 0}

    def _make(role, school_id="school-1", email=None) -> User:
        counter["n"] += 1
        account = store.create_account(
            email or f"{role}{counter['n']}@example.com",
            STRONG_PASSWORD,
            {"role": role, "school_id": school_id, "first_name": role.title()},
        )
        return store.get_user_by_id(account.id)

    return _make


def days_from_fixed_now(days: int) -> str:
    return (FIXED_NOW + timedelta(days=days)).isoformat()
