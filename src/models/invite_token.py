"""Invite token database model.

This module defines the InviteToken database model using SQLAlchemy.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String
from .base import Base


class InviteTokenModel(Base):
    """Invite token database model."""

    __tablename__ = "invite_tokens"
    __table_args__ = (
        CheckConstraint("times_used <= usage_limit", name="check_invite_token_usage"),
        CheckConstraint("usage_limit > 0", name="check_invite_token_usage_limit"),
    )

    token = Column(String, primary_key=True, index=True)
    role = Column(String, nullable=False)
    school_id = Column(String, index=True, nullable=True)  # null for superadmin scope
    specific_class_id = Column(String, nullable=True)
    created_by_user_id = Column(String, index=True, nullable=True)
    times_used = Column(Integer, nullable=False, default=0)
    usage_limit = Column(Integer, nullable=False, default=1)
    created_at = Column(String, nullable=False)  # ISO format string
    expires_at = Column(String, nullable=True)  # ISO format string
