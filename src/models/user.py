"""Profile database model.

This module defines the Profile database model using SQLAlchemy. A profile
row is the application-side view of an account: one per registered user.
"""

from sqlalchemy import Column, String
from .base import Base


class ProfileModel(Base):
    """Profile database model."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)  # see schemas.role.Role
    school_id = Column(String, index=True, nullable=True)  # null for superadmin
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(String, nullable=False)  # ISO format string
