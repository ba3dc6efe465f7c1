"""
Health check endpoint for monitoring and diagnostics.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from twinguard.core.config import settings
from twinguard.core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Verifies the API is up and the attack/audit store answers SELECT 1.

    Returns:
        {"ok": true, "db": true, "environment": "<APP_ENV>"}, or 503 if the database is down
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
    }
