"""Attack record database model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from twinguard.core.database import Base, utcnow


class AttackRecord(Base):
    """One detected-and-blocked malicious or suspicious request or client action."""
    __tablename__ = "attack_logs"

    id = Column(Integer, primary_key=True, index=True)
    ip = Column(String(45), nullable=False, default="unknown")
    type = Column(String(100), nullable=False, index=True)  # e.g. "SQL_INJECTION:DROP_TABLE", "RATE_LIMIT", "CLIENT:COPY_ATTEMPT"
    severity = Column(Integer, nullable=False, index=True)  # 1-10
    timestamp = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    # Geo fields, filled later by enrichment (null = pending or unavailable)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True, index=True)
    latitude = Column(String(32), nullable=True)
    longitude = Column(String(32), nullable=True)
