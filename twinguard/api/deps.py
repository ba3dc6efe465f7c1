"""
Shared dependencies and response helpers for v1 endpoints.
"""
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from twinguard.schemas.action import ActionResult
from twinguard.services.geo_enrichment import GeoEnricher

NO_STORE = {"Cache-Control": "no-store"}


def get_geo_enricher(request: Request) -> Optional[GeoEnricher]:
    return getattr(request.app.state, "geo_enricher", None)


def action_response(result: ActionResult) -> JSONResponse:
    """Render an ActionResult with the HTTP status its error code maps to."""
    return JSONResponse(
        status_code=result.http_status,
        content=result.model_dump(mode="json", exclude_none=True),
    )
