"""
Pytest configuration and fixtures.
"""
import math

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from twinguard.core.auth import IdentityClaim, ProxyHeaderIdentityProvider
from twinguard.core.config import Settings
from twinguard.core.database import Base, get_db
from twinguard.main import create_app
# Import all models to ensure they register with Base.metadata
from twinguard.models import AttackRecord, AuditLogEntry, Project, Subscriber, User  # noqa: F401
from twinguard.services.geo_enrichment import GeoEnricher, GeoLocation
from twinguard.services.waf import VerdictCategory, WafVerdict

# Use file-based SQLite for testing (more reliable than in-memory across threads)
TEST_DATABASE_URL = "sqlite:///./test_twinguard.db"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Shared secret between the test app and the headers its "proxy" forwards
PROXY_SECRET = "test-proxy-secret"

# Public address so geo enrichment is attempted
PUBLIC_IP = "81.2.69.142"

SYDNEY = GeoLocation(city="Sydney", country="Australia", latitude="-33.8688", longitude="151.2093")


class FakeWafClient:
    """
    Token bucket per IP with a controllable clock.

    ``forced`` short-circuits every decision; ``error`` is raised instead of
    deciding, to simulate an outage.
    """

    def __init__(self, capacity: int = 50, interval: float = 10.0):
        self.capacity = capacity
        self.interval = interval
        self.now = 0.0
        self.buckets = {}
        self.requests = []
        self.forced = None
        self.error = None

    @property
    def calls(self) -> int:
        return len(self.requests)

    def decide(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.forced is not None:
            return self.forced

        tokens, window_start = self.buckets.get(request.ip, (self.capacity, self.now))
        if self.now - window_start >= self.interval:
            tokens, window_start = self.capacity, self.now

        decision_id = f"fake_{self.calls}"
        if tokens >= request.requested:
            self.buckets[request.ip] = (tokens - request.requested, window_start)
            return WafVerdict(category=VerdictCategory.ALLOW, id=decision_id)

        self.buckets[request.ip] = (tokens, window_start)
        reset = max(1, math.ceil(self.interval - (self.now - window_start)))
        return WafVerdict(category=VerdictCategory.RATE_LIMIT, reset=reset, id=decision_id)


class RecordingGeoEnricher(GeoEnricher):
    """Real enrichment path with the network lookup replaced."""

    def __init__(self, session_factory, location=SYDNEY):
        super().__init__(session_factory, Settings(GEO_LOOKUP_ENABLED=True))
        self.location = location
        self.lookups = []

    def lookup(self, ip):
        self.lookups.append(ip)
        return self.location


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables once per test session."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Empty every table after each test."""
    yield
    with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def fake_waf():
    return FakeWafClient()


@pytest.fixture(scope="function")
def geo_enricher():
    return RecordingGeoEnricher(TestingSessionLocal)


def build_test_app(fake_waf, geo_enricher, settings=None):
    app = create_app(
        session_factory=TestingSessionLocal,
        waf_client=fake_waf,
        geo_enricher=geo_enricher,
        identity_provider=ProxyHeaderIdentityProvider(proxy_secret=PROXY_SECRET),
        settings=settings,
    )

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture(scope="function")
def app(fake_waf, geo_enricher):
    return build_test_app(fake_waf, geo_enricher)


@pytest.fixture(scope="function")
def client(app):
    """Test client that looks like a real browser."""
    return TestClient(app, headers={"User-Agent": BROWSER_UA})


@pytest.fixture(scope="function")
def db_session():
    """Database session for tests that need direct DB access."""
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


def make_user(db, email, role="user", external_id=None):
    user = User(email=email, role=role, external_id=external_id or f"ext_{email}", name=email.split("@")[0])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def claim_for(user):
    return IdentityClaim(subject=user.external_id, email=user.email)


def identity_headers(user, proxy_secret=PROXY_SECRET):
    headers = {"X-Auth-User-Id": user.external_id, "X-Auth-User-Email": user.email}
    if proxy_secret:
        headers["X-Auth-Proxy-Secret"] = proxy_secret
    return headers


@pytest.fixture(scope="function")
def admin_user(db_session):
    return make_user(db_session, "admin@example.com", role="admin")


@pytest.fixture(scope="function")
def regular_user(db_session):
    return make_user(db_session, "visitor@example.com", role="user")


@pytest.fixture(scope="function")
def admin_claim(admin_user):
    return claim_for(admin_user)


@pytest.fixture(scope="function")
def admin_headers(admin_user):
    return identity_headers(admin_user)
