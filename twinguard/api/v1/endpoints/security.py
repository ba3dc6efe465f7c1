"""
Client-side security event intake.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from twinguard.core.database import get_db
from twinguard.schemas.client_event import ClientEventRequest, ClientEventResponse
from twinguard.services.client_events import log_client_event
from twinguard.utils.client_ip import get_client_ip

router = APIRouter()


@router.post("/client-events", response_model=ClientEventResponse)
def client_event(
    request: Request,
    payload: Optional[ClientEventRequest] = Body(None),
    db: Session = Depends(get_db),
):
    """Always 200; the body says whether the event was stored."""
    payload = payload or ClientEventRequest()
    return log_client_event(db, payload.type, payload.metadata, get_client_ip(request))
