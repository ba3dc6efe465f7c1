"""
Tests for geo enrichment of attack records.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.responses import JSONResponse

from twinguard.core.config import Settings
from twinguard.services.attack_store import AttackRecordStore
from twinguard.services.geo_enrichment import GeoEnricher, parse_ip_api, parse_ipapi

from conftest import TestingSessionLocal

IPAPI_BODY = {"city": "London", "country_name": "United Kingdom", "latitude": 51.5074, "longitude": -0.1278}
IP_API_BODY = {"status": "success", "city": "Berlin", "country": "Germany", "lat": 52.52, "lon": 13.405}


def _response(status_code=200, body=None):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = body
    return response


@pytest.fixture
def enricher():
    return GeoEnricher(TestingSessionLocal, Settings(GEO_LOOKUP_ENABLED=True, GEO_TIMEOUT_SECONDS=3.0))


def test_parse_ipapi():
    location = parse_ipapi(IPAPI_BODY)
    assert location.city == "London"
    assert location.country == "United Kingdom"
    assert location.latitude == "51.5074"
    assert location.longitude == "-0.1278"

    assert parse_ipapi({"error": True, "reason": "RateLimited"}) is None
    assert parse_ipapi({"city": "X", "latitude": None, "longitude": 1}) is None


def test_parse_ip_api():
    location = parse_ip_api(IP_API_BODY)
    assert location.city == "Berlin"
    assert location.latitude == "52.52"

    assert parse_ip_api({"status": "fail", "message": "private range"}) is None


@pytest.mark.parametrize("ip,routable", [
    ("81.2.69.142", True),
    ("2a00:1450:4009:81f::200e", True),
    ("unknown", False),
    ("", False),
    (None, False),
    ("127.0.0.1", False),
    ("::1", False),
    ("10.0.0.5", False),
    ("192.168.1.10", False),
    ("169.254.1.1", False),
    ("not-an-ip", False),
])
def test_is_routable(ip, routable):
    assert GeoEnricher.is_routable(ip) is routable


def test_lookup_uses_primary_with_timeout(enricher):
    with patch("twinguard.services.geo_enrichment.requests.get", return_value=_response(200, IPAPI_BODY)) as get:
        location = enricher.lookup("81.2.69.142")

    assert location.city == "London"
    get.assert_called_once()
    assert get.call_args.args[0] == "https://ipapi.co/81.2.69.142/json/"
    assert get.call_args.kwargs["timeout"] == 3.0


def test_lookup_falls_back_when_primary_fails(enricher):
    responses = [requests.Timeout("slow"), _response(200, IP_API_BODY)]
    with patch("twinguard.services.geo_enrichment.requests.get", side_effect=responses) as get:
        location = enricher.lookup("81.2.69.142")

    assert location.city == "Berlin"
    assert get.call_count == 2
    assert "ip-api.com" in get.call_args.args[0]


def test_lookup_returns_none_when_all_providers_fail(enricher):
    responses = [_response(429, {}), _response(200, {"status": "fail"})]
    with patch("twinguard.services.geo_enrichment.requests.get", side_effect=responses):
        assert enricher.lookup("81.2.69.142") is None


def test_enrich_writes_geo_fields(enricher, db_session):
    record_id = AttackRecordStore(db_session).insert("81.2.69.142", "RATE_LIMIT", 6)

    with patch("twinguard.services.geo_enrichment.requests.get", return_value=_response(200, IPAPI_BODY)):
        assert enricher.enrich(record_id, "81.2.69.142") is True

    db_session.expire_all()
    record = AttackRecordStore(db_session).get(record_id)
    assert record.city == "London"
    assert record.country == "United Kingdom"
    assert record.type == "RATE_LIMIT"


def test_enrich_failure_leaves_geo_null_and_does_not_raise(enricher, db_session):
    record_id = AttackRecordStore(db_session).insert("81.2.69.142", "RATE_LIMIT", 6)

    with patch("twinguard.services.geo_enrichment.requests.get", side_effect=requests.ConnectionError("down")) as get:
        assert enricher.enrich(record_id, "81.2.69.142") is False

    # One attempt per provider, no retries
    assert get.call_count == 2
    db_session.expire_all()
    record = AttackRecordStore(db_session).get(record_id)
    assert record.city is None and record.latitude is None


def test_enrich_skips_private_ip_without_network(enricher):
    with patch("twinguard.services.geo_enrichment.requests.get") as get:
        assert enricher.enrich(1, "192.168.0.10") is False
    get.assert_not_called()


def test_enrich_swallows_storage_errors(db_session):
    broken_factory = MagicMock(side_effect=RuntimeError("pool exhausted"))
    enricher = GeoEnricher(broken_factory, Settings(GEO_LOOKUP_ENABLED=True))

    with patch("twinguard.services.geo_enrichment.requests.get", return_value=_response(200, IPAPI_BODY)):
        assert enricher.enrich(1, "81.2.69.142") is False


def test_disabled_lookup_does_nothing(db_session):
    enricher = GeoEnricher(TestingSessionLocal, Settings(GEO_LOOKUP_ENABLED=False))
    response = JSONResponse({})

    with patch("twinguard.services.geo_enrichment.requests.get") as get:
        enricher.schedule(response, 1, "81.2.69.142")
        assert enricher.enrich(1, "81.2.69.142") is False

    assert response.background is None
    get.assert_not_called()


def test_schedule_attaches_background_task(enricher):
    response = JSONResponse({})
    enricher.schedule(response, 5, "81.2.69.142")

    assert isinstance(response.background, BackgroundTask)
    assert response.background.func == enricher.enrich
    assert response.background.args == (5, "81.2.69.142")


def test_schedule_keeps_existing_background_work(enricher):
    response = JSONResponse({})
    existing = BackgroundTask(print, "already here")
    response.background = existing

    enricher.schedule(response, 5, "81.2.69.142")

    assert isinstance(response.background, BackgroundTasks)
    assert response.background.tasks[0] is existing
    assert response.background.tasks[1].func == enricher.enrich


def test_schedule_skips_unknown_ip(enricher):
    response = JSONResponse({})
    enricher.schedule(response, 5, "unknown")
    assert response.background is None
