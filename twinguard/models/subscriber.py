"""Newsletter subscriber model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from twinguard.core.database import Base, utcnow


class Subscriber(Base):
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lowercased
    name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
