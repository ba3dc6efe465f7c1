"""
Request logging middleware: one log line per request with a trace id.
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from twinguard.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with a trace_id and logs method, path, status and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"[{trace_id}] {request.method} {request.url.path} -> EXCEPTION after {latency_ms}ms: {exc}",
                exc_info=True,
            )
            # Global exception handler builds the sanitized response
            raise

        latency_ms = int((time.perf_counter() - start) * 1000)
        status_code = response.status_code
        level = logging.WARNING if status_code >= 400 else logging.INFO
        logger.log(
            level,
            f"[{trace_id}] {request.method} {request.url.path} -> {status_code} "
            f"({latency_ms}ms) ip={get_client_ip(request)}",
        )

        response.headers["X-Trace-ID"] = trace_id
        return response
