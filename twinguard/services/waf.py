"""
Boundary to the hosted WAF decision engine (bot detection, shield, rate limiting).

The engine itself is an external collaborator; this module only defines the
structured verdict it must return and the clients that fetch it.
"""
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import requests

from twinguard.core.config import Settings
from twinguard.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class VerdictCategory(str, Enum):
    ALLOW = "ALLOW"
    RATE_LIMIT = "RATE_LIMIT"
    BOT = "BOT"
    SHIELD = "SHIELD"
    DENY = "DENY"


@dataclass(frozen=True)
class WafVerdict:
    """Structured decision for one request."""
    category: VerdictCategory
    subtype: Optional[str] = None  # e.g. "SQL_INJECTION", "XSS", "AUTOMATED"
    reset: Optional[int] = None  # seconds until the rate limit window resets
    id: Optional[str] = None  # engine-side decision id, shown to blocked users as tracking id

    @property
    def is_denied(self) -> bool:
        return self.category != VerdictCategory.ALLOW


@dataclass(frozen=True)
class WafRequest:
    """What the engine is told about a request."""
    ip: str
    method: str
    path: str
    query: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    requested: int = 1  # rate limit tokens consumed by this request


class WafClient(Protocol):
    def decide(self, request: WafRequest) -> WafVerdict:
        ...


class AllowAllWafClient:
    """Used when no decision engine is configured: every request passes this stage."""

    def decide(self, request: WafRequest) -> WafVerdict:
        return WafVerdict(category=VerdictCategory.ALLOW, id=f"local_{uuid.uuid4().hex}")


def parse_verdict(data: Any) -> WafVerdict:
    """
    Parse the engine's JSON decision.

    Expected shape::

        {"id": "...", "conclusion": "ALLOW" | "DENY",
         "reason": {"type": "RATE_LIMIT" | "BOT" | "SHIELD" | ..., "subtype": "...", "reset": 7}}

    Raises:
        UpstreamError: if the body does not have that shape
    """
    if not isinstance(data, dict) or "conclusion" not in data:
        raise UpstreamError("Malformed WAF decision body")

    decision_id = data.get("id")
    conclusion = str(data["conclusion"]).upper()
    if conclusion == "ALLOW":
        return WafVerdict(category=VerdictCategory.ALLOW, id=decision_id)
    if conclusion != "DENY":
        raise UpstreamError(f"Unknown WAF conclusion: {conclusion}")

    reason = data.get("reason") or {}
    if not isinstance(reason, dict):
        raise UpstreamError("Malformed WAF decision reason")

    reason_type = str(reason.get("type") or "").upper()
    subtype = reason.get("subtype")
    reset = reason.get("reset")
    try:
        reset = int(reset) if reset is not None else None
    except (TypeError, ValueError):
        reset = None

    try:
        category = VerdictCategory(reason_type)
    except ValueError:
        # Unrecognised deny reasons keep their tag as the subtype
        category = VerdictCategory.DENY
        subtype = subtype or reason_type or None

    if category == VerdictCategory.ALLOW:
        category = VerdictCategory.DENY

    return WafVerdict(category=category, subtype=subtype, reset=reset, id=decision_id)


class HttpWafClient:
    """Calls a hosted decision endpoint over HTTP."""

    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 2.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def decide(self, request: WafRequest) -> WafVerdict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "ip": request.ip,
            "method": request.method,
            "path": request.path,
            "query": request.query,
            "headers": request.headers,
            "requested": request.requested,
        }

        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise UpstreamError(f"WAF decision request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"WAF decision body is not JSON: {e}") from e

        return parse_verdict(data)


def build_waf_client(settings: Settings) -> WafClient:
    """Pick the WAF client for this process from settings."""
    if settings.is_waf_configured():
        logger.info(f"WAF decision engine configured at {settings.WAF_DECISION_URL}")
        return HttpWafClient(
            settings.WAF_DECISION_URL,
            api_key=settings.WAF_API_KEY,
            timeout=settings.WAF_TIMEOUT_SECONDS,
        )
    logger.warning("WAF_DECISION_URL not configured - WAF stage allows all traffic")
    return AllowAllWafClient()
