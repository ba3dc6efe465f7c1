"""
Newsletter endpoint. Public; the form fields are screened like any tracked form.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.orm import Session

from twinguard.api.deps import action_response, get_geo_enricher
from twinguard.core.auth import get_request_context
from twinguard.core.database import get_db
from twinguard.services import newsletter_actions
from twinguard.services.audit_store import RequestContext
from twinguard.services.geo_enrichment import GeoEnricher

router = APIRouter()


@router.post("")
def subscribe(
    background_tasks: BackgroundTasks,
    payload: Optional[Dict[str, Any]] = Body(None),
    context: RequestContext = Depends(get_request_context),
    enricher: Optional[GeoEnricher] = Depends(get_geo_enricher),
    db: Session = Depends(get_db),
):
    """Returns {status, message, data?: subscriber}."""
    def schedule_geo(record_id: int, ip: str) -> None:
        if enricher is not None and enricher.is_routable(ip):
            background_tasks.add_task(enricher.enrich, record_id, ip)

    result = newsletter_actions.subscribe(db, payload or {}, context=context, on_attack_recorded=schedule_geo)
    return action_response(result)
