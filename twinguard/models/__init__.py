"""Database models."""
from twinguard.models.attack_record import AttackRecord
from twinguard.models.audit_log import AuditLogEntry
from twinguard.models.user import User
from twinguard.models.project import Project
from twinguard.models.subscriber import Subscriber

__all__ = [
    "AttackRecord",
    "AuditLogEntry",
    "User",
    "Project",
    "Subscriber",
]
