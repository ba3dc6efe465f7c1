"""
Tests for audited reads of the audit trail.
"""
from datetime import datetime, timezone

from fastapi import status

from twinguard.core.error_codes import MSG_NOT_AUTHORIZED
from twinguard.models.audit_log import AuditLogEntry
from twinguard.schemas.audit_log import AuditLogFilters
from twinguard.services import admin_actions, audit_actions
from twinguard.services.audit_store import AuditAction

from conftest import claim_for, identity_headers, make_user


def _entries(db, action):
    db.expire_all()
    return db.query(AuditLogEntry).filter(AuditLogEntry.action == action).order_by(AuditLogEntry.id).all()


def test_demoted_admin_reading_audit_logs_is_denied(db_session, admin_user):
    """Former admin still holding a valid identity session gets the generic message."""
    admin_user.role = "user"
    db_session.commit()

    result = audit_actions.get_audit_logs(db_session, claim_for(admin_user), AuditLogFilters(hours=24))

    assert result.status == "error"
    assert result.message == MSG_NOT_AUTHORIZED
    assert result.data is None

    entries = _entries(db_session, AuditAction.VIEW_AUDIT_LOGS)
    assert len(entries) == 1
    assert entries[0].status == "denied"
    assert entries[0].user_email == "admin@example.com"
    assert entries[0].details["filters"] == {"hours": 24, "limit": 50, "offset": 0}


def test_admin_reads_filtered_logs(db_session, admin_claim, regular_user):
    admin_actions.set_user_role(db_session, admin_claim, regular_user.email, "admin")
    admin_actions.set_user_role(db_session, admin_claim, "nobody@example.com", "admin")
    admin_actions.list_users(db_session, claim_for(make_user(db_session, "plain@example.com")))

    result = audit_actions.get_audit_logs(
        db_session, admin_claim, AuditLogFilters(action=AuditAction.USER_ROLE_UPDATE, status="failed"),
    )

    assert result.status == "success"
    assert result.data["total"] == 1
    log = result.data["logs"][0]
    assert log["action"] == "USER_ROLE_UPDATE"
    assert log["status"] == "failed"
    assert log["metadata"]["reason"] == "User not found"
    assert log["created_at"].endswith("Z") or log["created_at"].endswith("+00:00")


def test_reading_logs_is_itself_audited(db_session, admin_claim):
    audit_actions.get_audit_logs(db_session, admin_claim)
    result = audit_actions.get_audit_logs(db_session, admin_claim, AuditLogFilters(action=AuditAction.VIEW_AUDIT_LOGS))

    # The first read is visible to the second
    assert result.data["total"] == 1
    assert [e.status for e in _entries(db_session, AuditAction.VIEW_AUDIT_LOGS)] == ["success", "success"]


def test_pagination_and_limit_cap(db_session, admin_claim):
    for _ in range(5):
        admin_actions.list_users(db_session, admin_claim)

    result = audit_actions.get_audit_logs(
        db_session, admin_claim, AuditLogFilters(action=AuditAction.USER_LIST_READ, limit=2, offset=4),
    )
    assert result.data["total"] == 5
    assert len(result.data["logs"]) == 1
    assert result.data["limit"] == 2
    assert result.data["offset"] == 4

    capped = audit_actions.get_audit_logs(db_session, admin_claim, AuditLogFilters(limit=100000))
    assert capped.data["limit"] == 500


def test_invalid_status_filter_is_a_validation_failure(db_session, admin_claim):
    result = audit_actions.get_audit_logs(db_session, admin_claim, AuditLogFilters(status="pending"))

    assert result.code == "VALIDATION"
    entries = _entries(db_session, AuditAction.VIEW_AUDIT_LOGS)
    assert [e.status for e in entries] == ["failed"]


def test_audit_stats(db_session, admin_claim, regular_user):
    admin_actions.list_users(db_session, admin_claim)
    admin_actions.list_users(db_session, claim_for(regular_user))

    result = audit_actions.get_audit_stats(db_session, admin_claim)

    assert result.status == "success"
    assert result.data["total"] == 2
    assert result.data["recent"] == 2
    assert result.data["by_status"] == {"success": 1, "failed": 0, "denied": 1}
    assert result.data["top_actions"] == [{"action": "USER_LIST_READ", "count": 2}]
    assert _entries(db_session, AuditAction.VIEW_AUDIT_STATS)[0].status == "success"


def test_audit_stats_denied_for_non_admin(db_session, regular_user):
    result = audit_actions.get_audit_stats(db_session, claim_for(regular_user))

    assert result.code == "NOT_AUTHORIZED"
    assert _entries(db_session, AuditAction.VIEW_AUDIT_STATS)[0].status == "denied"


def test_audit_logs_endpoint(client, db_session, admin_user):
    response = client.get("/api/v1/audit-logs?hours=24&limit=10", headers=identity_headers(admin_user))

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["limit"] == 10


def test_audit_logs_endpoint_denies_demoted_admin(client, db_session, admin_user):
    headers = identity_headers(admin_user)
    admin_user.role = "user"
    db_session.commit()

    response = client.get("/api/v1/audit-logs?hours=24", headers=headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"status": "error", "message": MSG_NOT_AUTHORIZED, "code": "NOT_AUTHORIZED"}


def test_audit_stats_endpoint(client, admin_headers):
    response = client.get("/api/v1/audit-stats", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert set(response.json()["data"]) == {"total", "recent", "by_status", "top_actions"}


def test_naive_start_date_with_hours_is_treated_as_utc(db_session, admin_claim):
    filters = AuditLogFilters(start_date=datetime(2026, 1, 1), hours=24)
    assert filters.start_date == datetime(2026, 1, 1, tzinfo=timezone.utc)

    result = audit_actions.get_audit_logs(db_session, admin_claim, filters)

    assert result.status == "success"
    entries = _entries(db_session, AuditAction.VIEW_AUDIT_LOGS)
    assert [e.status for e in entries] == ["success"]


def test_audit_logs_endpoint_accepts_naive_dates(client, db_session, admin_headers):
    response = client.get(
        "/api/v1/audit-logs?start_date=2026-01-01T00:00:00&end_date=2099-01-01T00:00:00&hours=24",
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "success"
    assert len(_entries(db_session, AuditAction.VIEW_AUDIT_LOGS)) == 1


def test_audit_logs_endpoint_rejects_out_of_range_hours(client, db_session, admin_headers):
    response = client.get("/api/v1/audit-logs?hours=100000", headers=admin_headers)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert client.get("/api/v1/audit-logs?hours=8760", headers=admin_headers).status_code == status.HTTP_200_OK
