"""Parent invite database model.

Parent invites are "P-" prefixed codes that register a parent and link them
to one student.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String
from .base import Base


class ParentInviteModel(Base):
    """Parent invite database model."""

    __tablename__ = "parent_invites"
    __table_args__ = (
        CheckConstraint("times_used <= usage_limit", name="check_parent_invite_usage"),
        CheckConstraint("usage_limit > 0", name="check_parent_invite_usage_limit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    student_id = Column(String, index=True, nullable=True)
    school_id = Column(String, index=True, nullable=True)
    times_used = Column(Integer, nullable=False, default=0)
    usage_limit = Column(Integer, nullable=False, default=1)
    parent_id = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    used_at = Column(String, nullable=True)
    expires_at = Column(String, nullable=True)
