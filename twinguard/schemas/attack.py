"""Schemas for attack records and dashboard aggregates."""
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, field_validator

from twinguard.core.database import as_utc


class AttackRecordResponse(BaseModel):
    """One attack record as shown on the live dashboard."""
    id: int
    ip: str
    type: str
    severity: int
    timestamp: datetime
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class HourlyStat(BaseModel):
    time: str  # "HH:00"
    high: int
    med: int
    low: int


class ThreatActivity(BaseModel):
    threats: int
    blocked: int


class StorageBreakdown(BaseModel):
    last_24h: int
    last_7d: int
    last_30d: int
    older_than_30d: int


class StorageStats(BaseModel):
    """Response schema for attack log storage statistics."""
    total_logs: int
    estimated_size_mb: float
    oldest_log: Optional[datetime] = None
    newest_log: Optional[datetime] = None
    breakdown: StorageBreakdown


class PurgeResult(BaseModel):
    deleted_count: int
    retention_days: Optional[int] = None
    country: Optional[str] = None
    remaining_logs: int


class SeverityBreakdown(BaseModel):
    critical: int
    high: int
    medium: int
    low: int


class SqlInjectionStats(BaseModel):
    """SQL injection attempts seen by the detector, all time unless noted."""
    total: int
    by_severity: SeverityBreakdown
    by_rule: Dict[str, int]
    last_24h: int
    last_7d: int
