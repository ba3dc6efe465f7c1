"""
Client address extraction.
"""
import ipaddress
from typing import Optional

UNKNOWN_IP = "unknown"

# Proxy headers in order of preference (hosting edge, generic proxy, Cloudflare)
_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def _valid_ip(value: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_client_ip(request) -> str:
    """
    Best-effort client IP for a Starlette/FastAPI request.

    Forwarded headers win over the socket peer. Returns "unknown" when nothing
    parses as an IP address (the test client reports "testclient" as its host).
    """
    headers = request.headers
    for header in _IP_HEADERS:
        raw = headers.get(header)
        if raw:
            candidate = raw.split(",")[0].strip()
            parsed = _valid_ip(candidate)
            if parsed:
                return parsed
    if request.client and request.client.host:
        parsed = _valid_ip(request.client.host)
        if parsed:
            return parsed
    return UNKNOWN_IP
