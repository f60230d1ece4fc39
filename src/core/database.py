"""Database connection and session management.

This module handles the database connection using SQLAlchemy.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATA_DIR, DATABASE_URL, EXTERNAL_CALL_TIMEOUT_SECONDS
from models.base import Base
# Import models to ensure they are registered with Base.metadata
import models  # noqa: F401


def build_engine(url: str = DATABASE_URL):
    """Create an engine for the given URL.

    SQLite gets a busy timeout bounded by EXTERNAL_CALL_TIMEOUT_SECONDS, and
    in-memory SQLite shares one connection so every session sees the same
    tables.
    """
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": EXTERNAL_CALL_TIMEOUT_SECONDS,
        }
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        # Ensure data directory exists
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args=connect_args)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
    )


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


# Initialize DB (create tables if not exist)
init_db()


def get_db():
    """Dependency for getting a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
