"""
Attack log endpoints feeding the live dashboard, plus admin maintenance.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from twinguard.api.deps import NO_STORE, action_response
from twinguard.core.auth import IdentityClaim, get_identity_claim, get_request_context
from twinguard.core.config import settings
from twinguard.core.database import get_db
from twinguard.schemas.attack import AttackRecordResponse, HourlyStat, SqlInjectionStats, ThreatActivity
from twinguard.services import admin_actions
from twinguard.services.attack_store import AttackRecordStore
from twinguard.services.audit_store import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/attack-logs", response_model=List[AttackRecordResponse])
def list_attack_logs(
    hours: Optional[int] = Query(24, ge=1, le=24 * 365, description="Look-back window in hours"),
    limit: int = Query(settings.ATTACK_LOG_DEFAULT_LIMIT, ge=1, description="Maximum records (hard cap applies)"),
    type: Optional[str] = Query(None, max_length=100, description="Exact type, or a prefix ending in ':'"),
    min_severity: Optional[int] = Query(None, ge=1, le=10),
    db: Session = Depends(get_db),
):
    """Recent attack records, newest first. Never cached."""
    since = datetime.now(timezone.utc) - timedelta(hours=hours) if hours else None
    records = AttackRecordStore(db).query_recent(
        since=since,
        limit=limit,
        attack_type=type,
        min_severity=min_severity,
    )
    content = [AttackRecordResponse.model_validate(r).model_dump(mode="json") for r in records]
    return JSONResponse(content=content, headers=NO_STORE)


@router.get("/hourly-stats", response_model=List[HourlyStat])
def hourly_stats(db: Session = Depends(get_db)):
    """Trailing 24 hours of attack counts per hour and severity tier, oldest first."""
    buckets = AttackRecordStore(db).aggregate_by_hour()
    return JSONResponse(content=buckets, headers=NO_STORE)


@router.get("/threat-activity", response_model=ThreatActivity)
def threat_activity(db: Session = Depends(get_db)):
    # Every recorded attack was blocked, so both counters are the total
    total = AttackRecordStore(db).count()
    return JSONResponse(
        content=ThreatActivity(threats=total, blocked=total).model_dump(),
        headers=NO_STORE,
    )


@router.get("/attack-logs/sql-injection-stats", response_model=SqlInjectionStats)
def sql_injection_stats(db: Session = Depends(get_db)):
    """SQL injection totals by severity tier, detector rule and recency. Never cached."""
    stats = SqlInjectionStats(**AttackRecordStore(db).sql_injection_stats())
    return JSONResponse(content=stats.model_dump(), headers=NO_STORE)


@router.get("/attack-logs/storage")
def attack_log_storage(
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Row counts by age and estimated size. Admin only."""
    return action_response(admin_actions.get_attack_log_storage(db, claim, context=context))


@router.delete("/attack-logs")
def purge_attack_logs(
    retention_days: Optional[int] = Query(None, description="Delete records older than this many days (1-365)"),
    country: Optional[str] = Query(None, max_length=100, description="Delete records from this country"),
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Administrative purge. Admin only."""
    return action_response(
        admin_actions.purge_attack_logs(db, claim, retention_days=retention_days, country=country, context=context)
    )
