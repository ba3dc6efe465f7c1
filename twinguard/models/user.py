"""User model: system of record for roles."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from twinguard.core.database import Base, utcnow


class User(Base):
    """Local user row mirrored from the identity provider; role lives here only."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(255), unique=True, nullable=True, index=True)  # identity provider user id
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True)
