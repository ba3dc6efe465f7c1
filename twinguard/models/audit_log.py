"""Audit log model for privileged operation trail."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from sqlalchemy.sql import func

from twinguard.core.database import Base, utcnow


class AuditLogEntry(Base):
    """Append-only record of one privileged operation attempt and its outcome."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Actor identity captured at time of action (not a live reference)
    user_id = Column(String(255), nullable=True, index=True)
    user_email = Column(String(255), nullable=False)

    action = Column(String(50), nullable=False, index=True)  # e.g. "USER_ROLE_UPDATE", "VIEW_AUDIT_LOGS"
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)  # string to carry both int and external ids
    status = Column(String(20), nullable=False, index=True)  # success | failed | denied

    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
