from sqlalchemy import Column, String
from .base import Base


class SchoolModel(Base):
    __tablename__ = "schools"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
