"""
Attack record store.

Insert-now / enrich-later persistence for attack events, plus the read side
used by the live dashboard.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from twinguard.core.config import settings
from twinguard.core.database import as_utc
from twinguard.core.errors import StorageError, ValidationError
from twinguard.models.attack_record import AttackRecord
from twinguard.services.pattern_detector import SQL_INJECTION_PREFIX

logger = logging.getLogger(__name__)

# Severity tiers used by the hourly chart
HIGH_SEVERITY = 7
MEDIUM_SEVERITY = 4
# Top tier of the SQL injection summary
CRITICAL_SEVERITY = 9

# Rough on-disk footprint of one attack_logs row
ESTIMATED_BYTES_PER_RECORD = 500

GEO_FIELDS = ("city", "country", "latitude", "longitude")


def severity_tier(severity: int) -> str:
    """Map a 1-10 severity onto the chart tiers: high (>=7), med (4-6), low (<4)."""
    if severity >= HIGH_SEVERITY:
        return "high"
    if severity >= MEDIUM_SEVERITY:
        return "med"
    return "low"


class AttackRecordStore:
    """Persistence operations on the attack_logs table."""

    def __init__(self, db: Session, max_limit: Optional[int] = None):
        self.db = db
        self.max_limit = max_limit or settings.ATTACK_LOG_MAX_LIMIT

    def insert(self, ip: Optional[str], attack_type: str, severity: int) -> int:
        """
        Insert an attack record without geo fields and commit immediately.

        The row is visible to readers as soon as this returns.

        Returns:
            The store-assigned record id
        """
        record = AttackRecord(
            ip=(ip or "").strip() or "unknown",
            type=attack_type,
            severity=max(1, min(10, int(severity))),
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to insert attack record: {e}", code="DB_002") from e

        logger.info(f"Attack logged: id={record.id} type={record.type} severity={record.severity} ip={record.ip}")
        return record.id

    def update_geo(self, record_id: int, geo: Dict[str, Any]) -> bool:
        """
        Fill the geo fields of one record.

        Only geo columns are touched. Returns False if the record no longer exists.
        """
        values = {field: geo.get(field) for field in GEO_FIELDS}
        try:
            updated = (
                self.db.query(AttackRecord)
                .filter(AttackRecord.id == record_id)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to update geo for attack record {record_id}: {e}", code="DB_002") from e
        return updated > 0

    def get(self, record_id: int) -> Optional[AttackRecord]:
        return self.db.query(AttackRecord).filter(AttackRecord.id == record_id).first()

    def query_recent(
        self,
        since: Optional[datetime] = None,
        limit: int = 500,
        attack_type: Optional[str] = None,
        min_severity: Optional[int] = None,
        ip: Optional[str] = None,
    ) -> List[AttackRecord]:
        """
        Attack records newest first.

        ``limit`` is clamped to [1, max_limit] whatever the caller asks for.
        ``attack_type`` matches exactly, or as a prefix when it ends with ":"
        (e.g. "CLIENT:" or "SQL_INJECTION:").
        """
        limit = max(1, min(int(limit), self.max_limit))
        query = self.db.query(AttackRecord)

        if since is not None:
            query = query.filter(AttackRecord.timestamp >= since)
        if attack_type:
            if attack_type.endswith(":"):
                query = query.filter(AttackRecord.type.startswith(attack_type))
            else:
                query = query.filter(AttackRecord.type == attack_type)
        if min_severity is not None:
            query = query.filter(AttackRecord.severity >= min_severity)
        if ip:
            query = query.filter(AttackRecord.ip == ip)

        try:
            return (
                query.order_by(AttackRecord.timestamp.desc(), AttackRecord.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query attack records: {e}", code="DB_002") from e

    def aggregate_by_hour(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Per-hour counts for the trailing 24 hours, bucketed by severity tier.

        Always returns 24 entries, oldest hour first, zero-filled.
        """
        now = as_utc(now) if now else datetime.now(timezone.utc)
        start = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=23)

        buckets = []
        for offset in range(24):
            hour = start + timedelta(hours=offset)
            buckets.append({"time": f"{hour.hour:02d}:00", "high": 0, "med": 0, "low": 0})

        try:
            rows = (
                self.db.query(AttackRecord.timestamp, AttackRecord.severity)
                .filter(AttackRecord.timestamp >= start)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to aggregate attack records: {e}", code="DB_002") from e

        for timestamp, severity in rows:
            index = int((as_utc(timestamp) - start).total_seconds() // 3600)
            if 0 <= index < 24:
                buckets[index][severity_tier(severity)] += 1

        return buckets

    def count(self) -> int:
        try:
            return self.db.query(func.count(AttackRecord.id)).scalar() or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count attack records: {e}", code="DB_002") from e

    def sql_injection_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Summary of SQL injection records for the dashboard.

        Severity tiers: critical (>=9), high (7-8), medium (4-6), low (<4).
        ``by_rule`` counts records per detector rule, e.g. "DROP_TABLE".
        """
        now = as_utc(now) if now else datetime.now(timezone.utc)
        prefix = f"{SQL_INJECTION_PREFIX}:"
        is_sql_injection = AttackRecord.type.startswith(prefix)

        try:
            rows = (
                self.db.query(AttackRecord.type, AttackRecord.severity, AttackRecord.timestamp)
                .filter(is_sql_injection)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to summarize SQL injection records: {e}", code="DB_002") from e

        by_severity = {"critical": 0, "high": 0, "medium": 0, "low": 0}
        by_rule: Dict[str, int] = {}
        last_24h = last_7d = 0
        for attack_type, severity, timestamp in rows:
            if severity >= CRITICAL_SEVERITY:
                by_severity["critical"] += 1
            elif severity >= HIGH_SEVERITY:
                by_severity["high"] += 1
            elif severity >= MEDIUM_SEVERITY:
                by_severity["medium"] += 1
            else:
                by_severity["low"] += 1

            rule = attack_type[len(prefix):]
            by_rule[rule] = by_rule.get(rule, 0) + 1

            age = now - as_utc(timestamp)
            if age <= timedelta(hours=24):
                last_24h += 1
            if age <= timedelta(days=7):
                last_7d += 1

        return {
            "total": len(rows),
            "by_severity": by_severity,
            "by_rule": dict(sorted(by_rule.items(), key=lambda item: (-item[1], item[0]))),
            "last_24h": last_24h,
            "last_7d": last_7d,
        }

    def storage_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Row counts by age plus an estimated table size."""
        now = as_utc(now) if now else datetime.now(timezone.utc)
        last_24h = now - timedelta(hours=24)
        last_7d = now - timedelta(days=7)
        last_30d = now - timedelta(days=30)

        def _count(*criteria) -> int:
            return self.db.query(func.count(AttackRecord.id)).filter(*criteria).scalar() or 0

        try:
            total, oldest, newest = self.db.query(
                func.count(AttackRecord.id),
                func.min(AttackRecord.timestamp),
                func.max(AttackRecord.timestamp),
            ).one()
            breakdown = {
                "last_24h": _count(AttackRecord.timestamp >= last_24h),
                "last_7d": _count(AttackRecord.timestamp >= last_7d),
                "last_30d": _count(AttackRecord.timestamp >= last_30d),
                "older_than_30d": _count(AttackRecord.timestamp < last_30d),
            }
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to compute attack log storage stats: {e}", code="DB_002") from e

        return {
            "total_logs": total or 0,
            "estimated_size_mb": round((total or 0) * ESTIMATED_BYTES_PER_RECORD / (1024 * 1024), 2),
            "oldest_log": as_utc(oldest) if oldest else None,
            "newest_log": as_utc(newest) if newest else None,
            "breakdown": breakdown,
        }

    def purge(
        self,
        retention_days: Optional[int] = None,
        country: Optional[str] = None,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> int:
        """
        Administrative purge of attack records.

        Deletes rows older than ``retention_days`` (1-365) and/or rows from
        ``country``. At least one criterion is required. With ``commit=False``
        the delete stays in the caller's transaction.

        Returns:
            Number of deleted rows
        """
        if retention_days is None and not country:
            raise ValidationError("Provide retention_days or country")
        if retention_days is not None and not 1 <= retention_days <= 365:
            raise ValidationError("Retention days must be between 1 and 365")

        query = self.db.query(AttackRecord)
        if retention_days is not None:
            now = as_utc(now) if now else datetime.now(timezone.utc)
            query = query.filter(AttackRecord.timestamp < now - timedelta(days=retention_days))
        if country:
            query = query.filter(AttackRecord.country == country)

        try:
            deleted = query.delete(synchronize_session=False)
            if commit:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to purge attack records: {e}", code="DB_002") from e

        logger.warning(f"Purged {deleted} attack records (retention_days={retention_days}, country={country})")
        return deleted
