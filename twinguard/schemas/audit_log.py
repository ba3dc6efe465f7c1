"""Schemas for the audit trail."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from twinguard.core.database import as_utc


class AuditLogResponse(BaseModel):
    """Response schema for one audit log entry."""
    id: int
    user_id: Optional[str] = None
    user_email: str
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    status: str
    metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("details", "metadata"),
    )
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    limit: int
    offset: int


class AuditLogFilters(BaseModel):
    """Filters for the audit log query. All given filters must match."""
    user_id: Optional[str] = None
    action: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    hours: Optional[int] = Field(default=None, ge=1, le=24 * 365, description="Shorthand for start_date = now - hours")
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Naive query dates are taken as UTC
        return as_utc(v) if v else v


class ActionCount(BaseModel):
    action: str
    count: int


class AuditStatsResponse(BaseModel):
    total: int
    recent: int
    by_status: Dict[str, int]
    top_actions: List[ActionCount]
