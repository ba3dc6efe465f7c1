"""
Audit log store for the privileged operation trail.

Appends are synchronous and not best-effort: a failed append raises
StorageError so the calling action reports the failure instead of silently
losing an entry.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from twinguard.core.config import settings
from twinguard.core.errors import StorageError
from twinguard.models.audit_log import AuditLogEntry

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audited actions."""
    USER_ROLE_UPDATE = "USER_ROLE_UPDATE"
    USER_LIST_READ = "USER_LIST_READ"
    PROJECT_CREATE = "PROJECT_CREATE"
    NEWSLETTER_SUBSCRIBE = "NEWSLETTER_SUBSCRIBE"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"
    VIEW_AUDIT_STATS = "VIEW_AUDIT_STATS"
    ATTACK_LOG_PURGE = "ATTACK_LOG_PURGE"
    VIEW_ATTACK_LOG_STORAGE = "VIEW_ATTACK_LOG_STORAGE"


class AuditStatus:
    """Outcome of an audited attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    DENIED = "denied"

    ALL = (SUCCESS, FAILED, DENIED)


class ResourceType:
    """Constants for resource types."""
    USER = "user"
    PROJECT = "project"
    NEWSLETTER = "newsletter"
    AUDIT_LOGS = "audit_logs"
    ATTACK_LOGS = "attack_logs"


@dataclass(frozen=True)
class AuditActor:
    """Actor identity captured at the time of the action."""
    user_id: Optional[str]
    user_email: str


ANONYMOUS_ACTOR = AuditActor(user_id=None, user_email="anonymous")


@dataclass(frozen=True)
class RequestContext:
    """Request metadata recorded with each entry."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogStore:
    """Append and query operations on the audit_logs table."""

    def __init__(self, db: Session, max_limit: Optional[int] = None):
        self.db = db
        self.max_limit = max_limit or settings.AUDIT_LOG_MAX_LIMIT

    def append(
        self,
        actor: AuditActor,
        action: str,
        status: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
    ) -> AuditLogEntry:
        """
        Append one audit entry and commit.

        Args:
            actor: Who attempted the action
            action: AuditAction constant
            status: AuditStatus constant
            resource_type: Type of the affected entity
            resource_id: Id of the affected entity (stored as string)
            metadata: Opaque JSON payload (old/new values, reason, filters)
            context: Request IP and user agent

        Raises:
            StorageError: if the entry could not be persisted
        """
        if status not in AuditStatus.ALL:
            raise ValueError(f"Invalid audit status: {status}")

        context = context or RequestContext()
        entry = AuditLogEntry(
            user_id=actor.user_id,
            user_email=actor.user_email,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            status=status,
            details=metadata,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[AUDIT] Failed to append {action}/{status} for {actor.user_email}: {e}")
            raise StorageError(f"Failed to append audit log entry: {e}", code="DB_002") from e

        logger.debug(f"[AUDIT] {action} {status} by {actor.user_email}")
        return entry

    def log_success(self, actor: AuditActor, action: str, **kwargs) -> AuditLogEntry:
        return self.append(actor, action, AuditStatus.SUCCESS, **kwargs)

    def log_failure(self, actor: AuditActor, action: str, **kwargs) -> AuditLogEntry:
        return self.append(actor, action, AuditStatus.FAILED, **kwargs)

    def log_denied(self, actor: AuditActor, action: str, **kwargs) -> AuditLogEntry:
        return self.append(actor, action, AuditStatus.DENIED, **kwargs)

    def query(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLogEntry], int]:
        """
        Filtered, paginated audit entries, newest first.

        All given filters are combined with AND.

        Returns:
            (entries for this page, total matching count)
        """
        limit = max(1, min(int(limit), self.max_limit))
        offset = max(0, int(offset))

        query = self.db.query(AuditLogEntry)
        if user_id:
            query = query.filter(AuditLogEntry.user_id == user_id)
        if action:
            query = query.filter(AuditLogEntry.action == action)
        if status:
            query = query.filter(AuditLogEntry.status == status)
        if start_date:
            query = query.filter(AuditLogEntry.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLogEntry.created_at <= end_date)

        try:
            total = query.count()
            entries = (
                query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query audit logs: {e}", code="DB_002") from e

        return entries, total

    def count(self, **filters) -> int:
        _, total = self.query(limit=1, **filters)
        return total

    def aggregate_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Totals for the admin dashboard.

        Returns:
            {"total", "recent" (last 24h), "by_status" ({status: count}),
             "top_actions" ([{"action", "count"}], top 10 by count)}
        """
        now = now or datetime.now(timezone.utc)
        count_col = func.count(AuditLogEntry.id)

        try:
            total = self.db.query(count_col).scalar() or 0
            recent = (
                self.db.query(count_col)
                .filter(AuditLogEntry.created_at >= now - timedelta(hours=24))
                .scalar()
                or 0
            )
            status_rows = (
                self.db.query(AuditLogEntry.status, count_col)
                .group_by(AuditLogEntry.status)
                .all()
            )
            action_rows = (
                self.db.query(AuditLogEntry.action, count_col)
                .group_by(AuditLogEntry.action)
                .order_by(count_col.desc(), AuditLogEntry.action.asc())
                .limit(10)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to aggregate audit logs: {e}", code="DB_002") from e

        by_status = {status: 0 for status in AuditStatus.ALL}
        for status, count in status_rows:
            by_status[status] = count

        return {
            "total": total,
            "recent": recent,
            "by_status": by_status,
            "top_actions": [{"action": action, "count": count} for action, count in action_rows],
        }
