"""
Tests for the attack record store.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from twinguard.core.errors import StorageError, ValidationError
from twinguard.models.attack_record import AttackRecord
from twinguard.services.attack_store import AttackRecordStore, severity_tier


def _add(db, timestamp, severity=5, attack_type="BOT_DETECTED", ip="81.2.69.142", country=None):
    record = AttackRecord(ip=ip, type=attack_type, severity=severity, timestamp=timestamp, country=country)
    db.add(record)
    db.commit()
    return record


def test_insert_is_visible_immediately_without_geo(db_session):
    store = AttackRecordStore(db_session)
    record_id = store.insert("81.2.69.142", "SQL_INJECTION:DROP_TABLE", 10)

    record = store.get(record_id)
    assert record.ip == "81.2.69.142"
    assert record.type == "SQL_INJECTION:DROP_TABLE"
    assert record.severity == 10
    assert record.timestamp is not None
    assert record.city is None and record.country is None
    assert record.latitude is None and record.longitude is None


@pytest.mark.parametrize("ip", [None, "", "   "])
def test_insert_without_ip_stores_unknown(db_session, ip):
    store = AttackRecordStore(db_session)
    record_id = store.insert(ip, "CLIENT:COPY_ATTEMPT", 4)
    assert store.get(record_id).ip == "unknown"


def test_insert_clamps_severity(db_session):
    store = AttackRecordStore(db_session)
    assert store.get(store.insert("1.1.1.1", "X", 0)).severity == 1
    assert store.get(store.insert("1.1.1.1", "X", 42)).severity == 10


def test_insert_failure_raises_storage_error(db_session):
    store = AttackRecordStore(db_session)
    with patch.object(db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
        with pytest.raises(StorageError):
            store.insert("1.1.1.1", "RATE_LIMIT", 6)


def test_update_geo_round_trip_keeps_identity_fields(db_session):
    """Geo update fills only geo fields; the record is otherwise unchanged."""
    store = AttackRecordStore(db_session)
    record_id = store.insert("81.2.69.142", "RATE_LIMIT", 6)
    before = store.get(record_id)
    snapshot = (before.id, before.ip, before.type, before.severity, before.timestamp)

    updated = store.update_geo(record_id, {
        "city": "London", "country": "United Kingdom", "latitude": "51.5", "longitude": "-0.12",
    })
    assert updated is True

    db_session.expire_all()
    after = store.query_recent(limit=10)[0]
    assert (after.id, after.ip, after.type, after.severity, after.timestamp) == snapshot
    assert after.city == "London"
    assert after.country == "United Kingdom"
    assert after.latitude == "51.5"
    assert after.longitude == "-0.12"


def test_update_geo_twice_is_idempotent(db_session):
    store = AttackRecordStore(db_session)
    record_id = store.insert("81.2.69.142", "RATE_LIMIT", 6)
    geo = {"city": "Paris", "country": "France", "latitude": "48.85", "longitude": "2.35"}

    assert store.update_geo(record_id, geo)
    assert store.update_geo(record_id, geo)

    assert store.count() == 1
    db_session.expire_all()
    assert store.get(record_id).city == "Paris"


def test_update_geo_on_missing_record_returns_false(db_session):
    assert AttackRecordStore(db_session).update_geo(999999, {"city": "Nowhere"}) is False


def test_query_recent_is_newest_first(db_session):
    now = datetime.now(timezone.utc)
    _add(db_session, now - timedelta(minutes=30), attack_type="OLD")
    _add(db_session, now - timedelta(minutes=5), attack_type="NEW")
    _add(db_session, now - timedelta(minutes=15), attack_type="MIDDLE")

    types = [r.type for r in AttackRecordStore(db_session).query_recent()]
    assert types == ["NEW", "MIDDLE", "OLD"]


def test_query_recent_limit_is_capped(db_session):
    store = AttackRecordStore(db_session, max_limit=3)
    for _ in range(5):
        store.insert("1.1.1.1", "BOT_DETECTED", 3)

    assert len(store.query_recent(limit=100000)) == 3
    assert len(store.query_recent(limit=0)) == 1


def test_query_recent_filters(db_session):
    now = datetime.now(timezone.utc)
    _add(db_session, now - timedelta(hours=2), severity=10, attack_type="SQL_INJECTION:DROP_TABLE")
    _add(db_session, now - timedelta(hours=1), severity=4, attack_type="CLIENT:COPY_ATTEMPT")
    _add(db_session, now - timedelta(hours=30), severity=6, attack_type="RATE_LIMIT")
    store = AttackRecordStore(db_session)

    assert len(store.query_recent(since=now - timedelta(hours=24))) == 2
    assert [r.type for r in store.query_recent(attack_type="CLIENT:")] == ["CLIENT:COPY_ATTEMPT"]
    assert [r.type for r in store.query_recent(attack_type="RATE_LIMIT")] == ["RATE_LIMIT"]
    assert [r.severity for r in store.query_recent(min_severity=6)] == [10, 6]


@pytest.mark.parametrize("severity,tier", [(10, "high"), (7, "high"), (6, "med"), (4, "med"), (3, "low"), (1, "low")])
def test_severity_tier(severity, tier):
    assert severity_tier(severity) == tier


def test_aggregate_by_hour_returns_24_zero_filled_buckets(db_session):
    now = datetime(2026, 3, 1, 15, 40, tzinfo=timezone.utc)
    buckets = AttackRecordStore(db_session).aggregate_by_hour(now=now)

    assert len(buckets) == 24
    assert buckets[0]["time"] == "16:00"  # 23 hours before 15:00
    assert buckets[-1]["time"] == "15:00"
    assert all(b["high"] == b["med"] == b["low"] == 0 for b in buckets)


def test_aggregate_by_hour_counts_by_tier(db_session):
    now = datetime(2026, 3, 1, 15, 40, tzinfo=timezone.utc)
    _add(db_session, now - timedelta(minutes=10), severity=9)
    _add(db_session, now - timedelta(minutes=20), severity=8)
    _add(db_session, now - timedelta(hours=2), severity=5)
    _add(db_session, now - timedelta(hours=5), severity=2)
    _add(db_session, now - timedelta(hours=30), severity=9)  # outside window

    buckets = AttackRecordStore(db_session).aggregate_by_hour(now=now)

    assert buckets[23] == {"time": "15:00", "high": 2, "med": 0, "low": 0}
    assert buckets[21] == {"time": "13:00", "high": 0, "med": 1, "low": 0}
    assert buckets[18] == {"time": "10:00", "high": 0, "med": 0, "low": 1}
    assert sum(b["high"] + b["med"] + b["low"] for b in buckets) == 4


def test_storage_stats(db_session):
    now = datetime.now(timezone.utc)
    _add(db_session, now - timedelta(hours=1))
    _add(db_session, now - timedelta(days=3))
    _add(db_session, now - timedelta(days=20))
    _add(db_session, now - timedelta(days=45))

    stats = AttackRecordStore(db_session).storage_stats(now=now)

    assert stats["total_logs"] == 4
    assert stats["breakdown"] == {"last_24h": 1, "last_7d": 2, "last_30d": 3, "older_than_30d": 1}
    assert stats["oldest_log"] < stats["newest_log"]
    assert stats["estimated_size_mb"] >= 0


def test_purge_requires_a_criterion(db_session):
    with pytest.raises(ValidationError):
        AttackRecordStore(db_session).purge()


@pytest.mark.parametrize("days", [0, 366, -5])
def test_purge_rejects_out_of_range_retention(db_session, days):
    with pytest.raises(ValidationError):
        AttackRecordStore(db_session).purge(retention_days=days)


def test_purge_by_retention_and_country(db_session):
    now = datetime.now(timezone.utc)
    _add(db_session, now - timedelta(days=40), country="France")
    _add(db_session, now - timedelta(days=40), country="Germany")
    _add(db_session, now - timedelta(days=1), country="France")
    store = AttackRecordStore(db_session)

    assert store.purge(retention_days=30, country="France", now=now) == 1
    assert store.count() == 2
    assert store.purge(retention_days=30, now=now) == 1
    assert store.count() == 1
    assert store.purge(country="France") == 1
    assert store.count() == 0


def test_purge_without_commit_joins_the_callers_transaction(db_session):
    _add(db_session, datetime.now(timezone.utc), country="France")
    store = AttackRecordStore(db_session)

    assert store.purge(country="France", commit=False) == 1
    db_session.rollback()
    assert store.count() == 1


def test_sql_injection_stats(db_session):
    now = datetime.now(timezone.utc)
    _add(db_session, now - timedelta(hours=1), severity=10, attack_type="SQL_INJECTION:DROP_TABLE")
    _add(db_session, now - timedelta(hours=2), severity=10, attack_type="SQL_INJECTION:DROP_TABLE")
    _add(db_session, now - timedelta(days=3), severity=8, attack_type="SQL_INJECTION:COMMENT")
    _add(db_session, now - timedelta(days=30), severity=9, attack_type="SQL_INJECTION:UNION_SELECT")
    _add(db_session, now - timedelta(hours=1), severity=6, attack_type="RATE_LIMIT")

    stats = AttackRecordStore(db_session).sql_injection_stats(now=now)

    assert stats["total"] == 4
    assert stats["by_severity"] == {"critical": 3, "high": 1, "medium": 0, "low": 0}
    assert stats["by_rule"] == {"DROP_TABLE": 2, "COMMENT": 1, "UNION_SELECT": 1}
    assert list(stats["by_rule"]) == ["DROP_TABLE", "COMMENT", "UNION_SELECT"]
    assert stats["last_24h"] == 2
    assert stats["last_7d"] == 3


def test_sql_injection_stats_when_empty(db_session):
    stats = AttackRecordStore(db_session).sql_injection_stats()

    assert stats["total"] == 0
    assert stats["by_rule"] == {}
    assert stats["by_severity"] == {"critical": 0, "high": 0, "medium": 0, "low": 0}
