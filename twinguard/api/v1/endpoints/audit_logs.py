"""
Audit trail endpoints. Admin only; every read is itself audited.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from twinguard.api.deps import action_response
from twinguard.core.auth import IdentityClaim, get_identity_claim, get_request_context
from twinguard.core.database import get_db
from twinguard.schemas.audit_log import AuditLogFilters
from twinguard.services import audit_actions
from twinguard.services.audit_store import RequestContext

router = APIRouter()


@router.get("/audit-logs")
def list_audit_logs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of entries to return"),
    offset: int = Query(0, ge=0, description="Number of entries to skip"),
    user_id: Optional[str] = Query(None, description="Filter by actor user id"),
    action: Optional[str] = Query(None, description="Filter by action tag"),
    status: Optional[str] = Query(None, description="success, failed or denied"),
    start_date: Optional[datetime] = Query(None, description="Entries from this date"),
    end_date: Optional[datetime] = Query(None, description="Entries until this date"),
    hours: Optional[int] = Query(None, ge=1, le=24 * 365, description="Entries from the last N hours"),
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Returns {status, message, data: {logs, total, limit, offset}}."""
    filters = AuditLogFilters(
        user_id=user_id,
        action=action,
        status=status,
        start_date=start_date,
        end_date=end_date,
        hours=hours,
        limit=limit,
        offset=offset,
    )
    return action_response(audit_actions.get_audit_logs(db, claim, filters, context=context))


@router.get("/audit-stats")
def audit_stats(
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return action_response(audit_actions.get_audit_stats(db, claim, context=context))
