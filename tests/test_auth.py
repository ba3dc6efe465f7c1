"""
Tests for identity claims and admin session revalidation.
"""
import pytest
from fastapi import status
from fastapi.testclient import TestClient
from starlette.requests import Request

from twinguard.core.auth import (
    IdentityClaim,
    ProxyHeaderIdentityProvider,
    actor_from,
    get_request_context,
    require_admin_session,
)
from twinguard.core.config import Settings
from twinguard.core.database import get_db
from twinguard.core.error_codes import MSG_NOT_AUTHORIZED
from twinguard.core.errors import AuthorizationError
from twinguard.core.roles import has_permission, is_valid_role
from twinguard.main import create_app
from twinguard.models.audit_log import AuditLogEntry
from twinguard.services.audit_store import AuditAction

from conftest import BROWSER_UA, TestingSessionLocal, claim_for, identity_headers, make_user


def _request(headers=None, client=("203.0.113.9", 5000)):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "client": client})


def test_provider_reads_forwarded_identity():
    claim = ProxyHeaderIdentityProvider(proxy_secret="s3cret").get_claim(_request({
        "X-Auth-User-Id": "user_2abc",
        "X-Auth-User-Email": " Admin@Example.COM ",
        "X-Auth-Proxy-Secret": "s3cret",
    }))
    assert claim == IdentityClaim(subject="user_2abc", email="admin@example.com")


def test_provider_without_headers_has_no_claim():
    assert ProxyHeaderIdentityProvider(proxy_secret="s3cret").get_claim(
        _request({"X-Auth-Proxy-Secret": "s3cret"})
    ) is None


def test_provider_without_configured_secret_ignores_identity_headers():
    identity = {"X-Auth-User-Id": "user_2abc", "X-Auth-User-Email": "admin@example.com"}

    assert ProxyHeaderIdentityProvider().get_claim(_request(identity)) is None
    assert ProxyHeaderIdentityProvider(proxy_secret="").get_claim(
        _request({**identity, "X-Auth-Proxy-Secret": ""})
    ) is None


def test_provider_requires_matching_proxy_secret():
    provider = ProxyHeaderIdentityProvider(proxy_secret="s3cret")
    identity = {"X-Auth-User-Id": "user_2abc", "X-Auth-User-Email": "admin@example.com"}

    assert provider.get_claim(_request(identity)) is None
    assert provider.get_claim(_request({**identity, "X-Auth-Proxy-Secret": "wrong"})) is None
    assert provider.get_claim(_request({**identity, "X-Auth-Proxy-Secret": "s3cret"})).subject == "user_2abc"


def test_require_admin_session_accepts_admin(db_session, admin_user):
    assert require_admin_session(db_session, claim_for(admin_user)).id == admin_user.id


def test_require_admin_session_matches_by_email_when_subject_unknown(db_session, admin_user):
    claim = IdentityClaim(subject="user_rotated", email="ADMIN@example.com")
    assert require_admin_session(db_session, claim).email == "admin@example.com"


@pytest.mark.parametrize("claim,code", [
    (None, "AUTH_001"),
    (IdentityClaim(subject="ext_ghost", email="ghost@example.com"), "AUTH_002"),
])
def test_require_admin_session_rejects_missing_identity(db_session, claim, code):
    with pytest.raises(AuthorizationError) as exc_info:
        require_admin_session(db_session, claim)
    assert exc_info.value.code == code


def test_require_admin_session_rejects_non_admin(db_session, regular_user):
    with pytest.raises(AuthorizationError) as exc_info:
        require_admin_session(db_session, claim_for(regular_user))
    assert exc_info.value.code == "PERM_001"


def test_role_change_takes_effect_on_next_call(db_session):
    user = make_user(db_session, "promoted@example.com")
    claim = claim_for(user)
    with pytest.raises(AuthorizationError):
        require_admin_session(db_session, claim)

    user.role = "admin"
    db_session.commit()
    assert require_admin_session(db_session, claim).role == "admin"


def test_actor_from_prefers_users_row(db_session, admin_user):
    actor = actor_from(IdentityClaim(subject="other", email="other@example.com"), admin_user)
    assert actor.user_email == "admin@example.com"
    assert actor.user_id == admin_user.external_id

    assert actor_from(IdentityClaim(subject=None, email=None)).user_email == "unknown"
    assert actor_from(None).user_email == "anonymous"


def test_request_context_uses_forwarded_ip():
    context = get_request_context(_request({"X-Forwarded-For": "81.2.69.142, 10.0.0.1", "User-Agent": "Mozilla/5.0"}))
    assert context.ip_address == "81.2.69.142"
    assert context.user_agent == "Mozilla/5.0"


def test_request_context_without_parsable_ip():
    context = get_request_context(_request(client=("testclient", 50000)))
    assert context.ip_address == "unknown"


def test_roles():
    assert has_permission("admin", "admin")
    assert not has_permission("user", "admin")
    assert is_valid_role("user")
    assert not is_valid_role("superuser")


def test_configured_proxy_secret_is_enforced_over_http(fake_waf, geo_enricher, db_session):
    admin = make_user(db_session, "admin@example.com", role="admin")
    app = create_app(
        session_factory=TestingSessionLocal,
        waf_client=fake_waf,
        geo_enricher=geo_enricher,
        identity_provider=ProxyHeaderIdentityProvider(proxy_secret="s3cret"),
    )

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app, headers={"User-Agent": BROWSER_UA})

    spoofed = client.get("/api/v1/users", headers=identity_headers(admin, proxy_secret=None))
    assert spoofed.status_code == status.HTTP_403_FORBIDDEN

    proxied = client.get("/api/v1/users", headers=identity_headers(admin, proxy_secret="s3cret"))
    assert proxied.status_code == status.HTTP_200_OK


def test_default_app_denies_unsigned_identity_headers(fake_waf, geo_enricher, db_session):
    """Without AUTH_PROXY_SECRET an admin's email in a header grants nothing."""
    admin = make_user(db_session, "admin@example.com", role="admin")
    app = create_app(
        session_factory=TestingSessionLocal,
        waf_client=fake_waf,
        geo_enricher=geo_enricher,
        settings=Settings(AUTH_PROXY_SECRET=None),
    )

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app, headers={"User-Agent": BROWSER_UA})

    response = client.get("/api/v1/audit-stats", headers={"X-Auth-User-Email": admin.email})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"status": "error", "message": MSG_NOT_AUTHORIZED, "code": "NOT_AUTHORIZED"}

    db_session.expire_all()
    entry = db_session.query(AuditLogEntry).filter(AuditLogEntry.action == AuditAction.VIEW_AUDIT_STATS).one()
    assert entry.status == "denied"
    assert entry.user_email == "anonymous"
