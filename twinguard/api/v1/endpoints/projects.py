"""
Portfolio project endpoints.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.orm import Session

from twinguard.api.deps import action_response, get_geo_enricher
from twinguard.core.auth import IdentityClaim, get_identity_claim, get_request_context
from twinguard.core.database import get_db
from twinguard.schemas.project import ProjectResponse
from twinguard.services import project_actions
from twinguard.services.audit_store import RequestContext
from twinguard.services.geo_enrichment import GeoEnricher

router = APIRouter()


@router.get("", response_model=List[ProjectResponse])
def list_projects(db: Session = Depends(get_db)):
    return project_actions.list_projects(db)


@router.post("")
def create_project(
    background_tasks: BackgroundTasks,
    payload: Optional[Dict[str, Any]] = Body(None),
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    enricher: Optional[GeoEnricher] = Depends(get_geo_enricher),
    db: Session = Depends(get_db),
):
    """
    Create a project. Admin only.

    The body is validated inside the action, after the admin check, so that
    non-admin attempts are audited as denied whatever they send.
    """
    def schedule_geo(record_id: int, ip: str) -> None:
        if enricher is not None and enricher.is_routable(ip):
            background_tasks.add_task(enricher.enrich, record_id, ip)

    result = project_actions.create_project(
        db, claim, payload or {}, context=context, on_attack_recorded=schedule_geo,
    )
    # FastAPI attaches background_tasks to the returned response
    return action_response(result)
