"""
Geo enrichment for attack records.

Best-effort: one bounded lookup against ipapi.co with ip-api.com as fallback,
never retried, every failure logged and dropped. Runs detached from the
request that inserted the record.
"""
import ipaddress
import logging
from typing import Any, Dict, NamedTuple, Optional

import requests
from starlette.background import BackgroundTask, BackgroundTasks

from twinguard.core.config import Settings, settings as default_settings
from twinguard.core.database import session_scope
from twinguard.services.attack_store import AttackRecordStore

logger = logging.getLogger(__name__)


class GeoLocation(NamedTuple):
    city: Optional[str]
    country: Optional[str]
    latitude: str
    longitude: str

    def as_dict(self) -> Dict[str, Any]:
        return self._asdict()


def _has_coordinates(lat, lon) -> bool:
    return lat not in (None, "") and lon not in (None, "")


def parse_ipapi(data: Dict[str, Any]) -> Optional[GeoLocation]:
    """Parse an ipapi.co response body."""
    if data.get("error"):
        return None
    lat, lon = data.get("latitude"), data.get("longitude")
    if not _has_coordinates(lat, lon):
        return None
    return GeoLocation(
        city=data.get("city"),
        country=data.get("country_name"),
        latitude=str(lat),
        longitude=str(lon),
    )


def parse_ip_api(data: Dict[str, Any]) -> Optional[GeoLocation]:
    """Parse an ip-api.com response body."""
    if data.get("status") != "success":
        return None
    lat, lon = data.get("lat"), data.get("lon")
    if not _has_coordinates(lat, lon):
        return None
    return GeoLocation(
        city=data.get("city"),
        country=data.get("country"),
        latitude=str(lat),
        longitude=str(lon),
    )


class GeoEnricher:
    """Process-wide geolocation handle; one instance per application."""

    def __init__(self, session_factory, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.session_factory = session_factory
        self.enabled = settings.GEO_LOOKUP_ENABLED
        self.timeout = settings.GEO_TIMEOUT_SECONDS
        self.providers = [
            (settings.GEO_PRIMARY_URL, parse_ipapi),
            (settings.GEO_FALLBACK_URL, parse_ip_api),
        ]

    @staticmethod
    def is_routable(ip: Optional[str]) -> bool:
        """False for unknown, unparsable, private, loopback and other non-public addresses."""
        if not ip:
            return False
        try:
            addr = ipaddress.ip_address(ip.strip())
        except ValueError:
            return False
        return not (
            addr.is_private
            or addr.is_loopback
            or addr.is_link_local
            or addr.is_reserved
            or addr.is_multicast
            or addr.is_unspecified
        )

    def lookup(self, ip: str) -> Optional[GeoLocation]:
        """
        Resolve an IP to a location.

        Each provider gets one call bounded by the configured timeout.
        Returns None if every provider fails or lacks coordinates.
        """
        for url_template, parse in self.providers:
            url = url_template.format(ip=ip)
            try:
                response = requests.get(url, timeout=self.timeout)
                if not response.ok:
                    logger.debug(f"[GEO] {url} -> HTTP {response.status_code}")
                    continue
                location = parse(response.json())
                if location is not None:
                    return location
            except (requests.RequestException, ValueError) as e:
                logger.debug(f"[GEO] Lookup via {url} failed: {e}")
        return None

    def enrich(self, record_id: int, ip: str) -> bool:
        """
        Look up ``ip`` and write the result onto attack record ``record_id``.

        Never raises. Returns True only if geo fields were written.
        """
        try:
            if not self.enabled or not self.is_routable(ip):
                return False

            location = self.lookup(ip)
            if location is None:
                logger.debug(f"[GEO] No location for record {record_id} ({ip})")
                return False

            with session_scope(self.session_factory) as db:
                updated = AttackRecordStore(db).update_geo(record_id, location.as_dict())

            if updated:
                logger.debug(f"[GEO] Record {record_id} located in {location.city}, {location.country}")
            return updated
        except Exception as e:
            logger.warning(f"[GEO] Enrichment dropped for record {record_id}: {e}")
            return False

    def schedule(self, response, record_id: int, ip: str) -> None:
        """
        Attach enrichment to ``response`` as a background task.

        Starlette runs it after the response has been sent, so the response
        path never waits on the lookup. Existing background work is kept.
        """
        if not self.enabled or not self.is_routable(ip):
            return

        task = BackgroundTask(self.enrich, record_id, ip)
        if response.background is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[response.background, task])
