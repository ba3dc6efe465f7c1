"""
Ingress filter: first line of defense for every inbound request.

Per request: USER_AGENT_CHECK -> PATTERN_SCAN -> WAF_DECISION, ending in
allow (call_next), rate limited (429 HTML) or denied (403 JSON). Every
pattern or WAF block is written to the attack log before the response is
returned; geo enrichment runs as a background task after it is sent.
"""
import html
import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple
from urllib.parse import unquote_plus

from fastapi import Request, Response, status
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from twinguard.core import error_codes
from twinguard.core.config import Settings, settings as default_settings
from twinguard.core.database import SessionLocal, session_scope
from twinguard.core.errors import UpstreamError
from twinguard.services.attack_store import AttackRecordStore
from twinguard.services.geo_enrichment import GeoEnricher
from twinguard.services.pattern_detector import scan_values
from twinguard.services.waf import VerdictCategory, WafClient, WafRequest, WafVerdict, build_waf_client
from twinguard.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

# Search engines and link-preview bots skip the User-Agent stage
ALLOWED_BOTS = (
    "googlebot",
    "bingbot",
    "duckduckbot",
    "slurp",
    "baiduspider",
    "yandexbot",
    "vercel",
    "vercelbot",
    "twitterbot",
    "facebookexternalhit",
    "linkedinbot",
    "slackbot",
    "discordbot",
    "whatsapp",
    "telegrambot",
)

BLOCKED_USER_AGENTS = (
    "curl",
    "wget",
    "python-requests",
    "python-urllib",
    "java/",
    "go-http-client",
    "ruby",
    "perl",
    "php",
    "scrapy",
    "postman",
    "insomnia",
    "httpie",
    "axios",
    "node-fetch",
    "apache-httpclient",
    "okhttp",
    "libwww",
)

BROWSER_ENGINES = ("Chrome/", "Safari/", "Firefox/", "Edg/", "OPR/")

MSG_MISSING_UA = "Missing User-Agent header"
MSG_AUTOMATED = "Automated requests are not allowed"
MSG_INVALID_UA = "Invalid User-Agent"

RATE_LIMIT_TYPE = "RATE_LIMIT"
RATE_LIMIT_SEVERITY = 6
BOT_TYPE = "BOT_DETECTED"
BOT_SEVERITY = 3
SHIELD_SEVERITY = 8
DEFAULT_BLOCK_TYPE = "SECURITY_BLOCK"
DEFAULT_BLOCK_SEVERITY = 5
DEFAULT_RETRY_AFTER = 10


@dataclass(frozen=True)
class UserAgentVerdict:
    allowed: bool
    reason: Optional[str] = None  # missing | automated | invalid | allowed_bot
    message: Optional[str] = None


def check_user_agent(user_agent: Optional[str]) -> UserAgentVerdict:
    """Classify a User-Agent header for the first ingress stage."""
    if not user_agent or not user_agent.strip():
        return UserAgentVerdict(False, "missing", MSG_MISSING_UA)

    lowered = user_agent.lower()
    if any(bot in lowered for bot in ALLOWED_BOTS):
        return UserAgentVerdict(True, "allowed_bot")
    if any(tool in lowered for tool in BLOCKED_USER_AGENTS):
        return UserAgentVerdict(False, "automated", MSG_AUTOMATED)
    if "Mozilla/" not in user_agent or not any(engine in user_agent for engine in BROWSER_ENGINES):
        return UserAgentVerdict(False, "invalid", MSG_INVALID_UA)
    return UserAgentVerdict(True)


def forbidden(message: str = error_codes.MSG_BLOCKED) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"error": "Forbidden", "message": message},
    )


def rate_limit_page(retry_after: int, tracking_id: Optional[str]) -> HTMLResponse:
    """429 page shown to throttled visitors."""
    tracking = html.escape(tracking_id or "n/a")
    body = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Too Many Requests</title>
    <style>
        body {{ font-family: system-ui, sans-serif; background: #0f172a; color: #e2e8f0;
               display: flex; align-items: center; justify-content: center; min-height: 100vh; margin: 0; }}
        .container {{ max-width: 480px; padding: 2rem; text-align: center; }}
        .rate-limit-info {{ background: #1e293b; border-radius: 8px; padding: 1rem; margin: 1.5rem 0; }}
        .tracking-id {{ font-family: monospace; color: #38bdf8; word-break: break-all; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Too Many Requests</h1>
        <p>An error occurred. Please contact your System Administrator or try again later.</p>
        <div class="rate-limit-info">
            <p><strong>Rate Limit Exceeded</strong></p>
            <p>You have exceeded the maximum number of requests allowed.</p>
            <p>Please wait {retry_after} seconds before trying again.</p>
        </div>
        <div class="tracking-info">
            <div class="tracking-label">Tracking ID:</div>
            <div class="tracking-id">{tracking}</div>
        </div>
    </div>
</body>
</html>"""
    return HTMLResponse(
        content=body,
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        headers={"Retry-After": str(retry_after)},
    )


def classify_denial(verdict: WafVerdict) -> Tuple[str, int]:
    """Attack type and severity recorded for a WAF denial."""
    if verdict.category == VerdictCategory.RATE_LIMIT:
        return RATE_LIMIT_TYPE, RATE_LIMIT_SEVERITY
    if verdict.category == VerdictCategory.BOT:
        return BOT_TYPE, BOT_SEVERITY
    if verdict.category == VerdictCategory.SHIELD:
        return f"SHIELD:{verdict.subtype or 'UNKNOWN'}", SHIELD_SEVERITY
    return verdict.subtype or DEFAULT_BLOCK_TYPE, DEFAULT_BLOCK_SEVERITY


class IngressFilterMiddleware(BaseHTTPMiddleware):
    """Blocks automation, injection signatures and WAF denials before routing."""

    def __init__(
        self,
        app: ASGIApp,
        session_factory: Optional[Callable] = None,
        waf_client: Optional[WafClient] = None,
        geo_enricher: Optional[GeoEnricher] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(app)
        self.settings = settings or default_settings
        self.session_factory = session_factory or SessionLocal
        self.waf_client = waf_client or build_waf_client(self.settings)
        self.geo_enricher = geo_enricher
        self.exempt_paths: List[str] = list(self.settings.INGRESS_EXEMPT_PATHS)
        self.scan_headers: List[str] = [h.lower() for h in self.settings.SCAN_HEADERS]

    def is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.exempt_paths)

    def scan_targets(self, request: Request) -> Iterator[str]:
        """Decoded path, decoded query string, then the configured headers."""
        yield unquote_plus(request.url.path)
        if request.url.query:
            yield unquote_plus(request.url.query)
        for header in self.scan_headers:
            value = request.headers.get(header)
            if value:
                yield unquote_plus(value)

    def _insert(self, ip: str, attack_type: str, severity: int) -> int:
        with session_scope(self.session_factory) as db:
            return AttackRecordStore(db).insert(ip, attack_type, severity)

    async def record_attack(self, response: Response, ip: str, attack_type: str, severity: int) -> None:
        """Persist the attack before ``response`` goes out; enrichment is attached to it."""
        try:
            record_id = await run_in_threadpool(self._insert, ip, attack_type, severity)
        except Exception as e:
            logger.error(f"[INGRESS] Failed to log {attack_type} from {ip}: {e}", exc_info=True)
            return
        if self.geo_enricher is not None:
            self.geo_enricher.schedule(response, record_id, ip)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or self.is_exempt(path):
            return await call_next(request)

        ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent", "")

        # USER_AGENT_CHECK
        ua_verdict = check_user_agent(user_agent)
        if not ua_verdict.allowed:
            logger.warning(f"[INGRESS] {ua_verdict.reason} user agent from {ip} on {path}: {user_agent[:120]!r}")
            return forbidden(ua_verdict.message)

        # PATTERN_SCAN
        match = scan_values(self.scan_targets(request))
        if match is not None:
            logger.warning(f"[INGRESS] {match.type} (severity {match.severity}) from {ip} on {path}")
            response = forbidden()
            await self.record_attack(response, ip, match.type, match.severity)
            return response

        # WAF_DECISION
        waf_request = WafRequest(
            ip=ip,
            method=request.method,
            path=path,
            query=request.url.query,
            headers={"user-agent": user_agent},
        )
        try:
            verdict = await run_in_threadpool(self.waf_client.decide, waf_request)
        except UpstreamError as e:
            if self.settings.WAF_FAIL_CLOSED:
                logger.error(f"[INGRESS] WAF unavailable, failing closed for {ip} on {path}: {e}")
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={"error": "Service Unavailable", "message": error_codes.MSG_UPSTREAM},
                )
            logger.warning(f"[INGRESS] WAF unavailable, failing open for {ip} on {path}: {e}")
            return await call_next(request)

        if not verdict.is_denied:
            return await call_next(request)

        attack_type, severity = classify_denial(verdict)
        if verdict.category == VerdictCategory.RATE_LIMIT:
            response = rate_limit_page(verdict.reset or DEFAULT_RETRY_AFTER, verdict.id)
        else:
            response = forbidden()

        logger.warning(f"[INGRESS] WAF {verdict.category.value} -> {attack_type} from {ip} on {path} (id={verdict.id})")
        await self.record_attack(response, ip, attack_type, severity)
        return response
