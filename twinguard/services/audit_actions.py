"""
Admin reads of the audit trail. Reading the trail is itself audited.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from twinguard.core.auth import IdentityClaim
from twinguard.schemas.action import ActionCode, ActionResult
from twinguard.schemas.audit_log import AuditLogFilters, AuditLogListResponse, AuditLogResponse, AuditStatsResponse
from twinguard.services.audit_store import AuditAction, AuditLogStore, AuditStatus, RequestContext, ResourceType
from twinguard.services.privileged import AdminSession, begin_admin_action


def get_audit_logs(
    db: Session,
    claim: Optional[IdentityClaim],
    filters: Optional[AuditLogFilters] = None,
    context: Optional[RequestContext] = None,
) -> ActionResult:
    """Filtered, paginated audit entries, newest first."""
    filters = filters or AuditLogFilters()
    applied = filters.model_dump(mode="json", exclude_none=True)

    session = begin_admin_action(
        db, claim, AuditAction.VIEW_AUDIT_LOGS, ResourceType.AUDIT_LOGS, context,
        metadata={"filters": applied},
    )
    if not isinstance(session, AdminSession):
        return session

    try:
        if filters.status and filters.status not in AuditStatus.ALL:
            return session.failed(
                "Status must be one of: success, failed, denied", ActionCode.VALIDATION,
                reason="Invalid status filter", metadata={"filters": applied},
            )

        start_date = filters.start_date
        if filters.hours:
            since = datetime.now(timezone.utc) - timedelta(hours=filters.hours)
            start_date = max(start_date, since) if start_date else since

        store = AuditLogStore(db)
        entries, total = store.query(
            user_id=filters.user_id,
            action=filters.action,
            status=filters.status,
            start_date=start_date,
            end_date=filters.end_date,
            limit=filters.limit,
            offset=filters.offset,
        )
        page = AuditLogListResponse(
            logs=[AuditLogResponse.model_validate(e) for e in entries],
            total=total,
            limit=min(filters.limit, store.max_limit),
            offset=filters.offset,
        )
        return session.success(
            "Audit logs retrieved",
            data=page.model_dump(mode="json"),
            metadata={"filters": applied, "resultCount": len(entries)},
        )
    except Exception as e:
        return session.unexpected(e, "AUDIT_001", metadata={"filters": applied})


def get_audit_stats(
    db: Session,
    claim: Optional[IdentityClaim],
    context: Optional[RequestContext] = None,
) -> ActionResult:
    session = begin_admin_action(db, claim, AuditAction.VIEW_AUDIT_STATS, ResourceType.AUDIT_LOGS, context)
    if not isinstance(session, AdminSession):
        return session

    try:
        stats = AuditStatsResponse(**AuditLogStore(db).aggregate_stats())
        return session.success("Audit statistics retrieved", data=stats.model_dump(mode="json"))
    except Exception as e:
        return session.unexpected(e, "AUDIT_002")
