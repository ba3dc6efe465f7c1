"""
Main FastAPI application entry point.
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from twinguard.api.v1.router import api_router
from twinguard.core.auth import IdentityProvider, ProxyHeaderIdentityProvider
from twinguard.core.config import Settings, settings as default_settings
from twinguard.core.database import Base, SessionLocal, session_scope
from twinguard.core.errors import TwinGuardError
from twinguard.core.logging_config import setup_logging
from twinguard.middleware.ingress_filter import IngressFilterMiddleware
from twinguard.middleware.request_logging import RequestLoggingMiddleware
from twinguard.services.error_sanitizer import sanitize
from twinguard.services.geo_enrichment import GeoEnricher
from twinguard.services.waf import WafClient, build_waf_client

# Import all models to ensure they register with Base.metadata
from twinguard.models import AttackRecord, AuditLogEntry, Project, Subscriber, User  # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)


def _run_migrations() -> None:
    """Run Alembic migrations when a deployment database is configured."""
    if not os.getenv("DATABASE_URL"):
        logger.info("[MIGRATION] DATABASE_URL not set, skipping migrations (local dev mode)")
        return
    try:
        from alembic import command
        from alembic.config import Config

        logger.info("[MIGRATION] DATABASE_URL detected, running Alembic migrations...")
        command.upgrade(Config("alembic.ini"), "head")
        logger.info("[MIGRATION] Alembic migrations completed (or already up-to-date)")
    except Exception as e:
        trace_id = str(uuid.uuid4())
        logger.warning(f"[MIGRATION] [{trace_id}] Alembic migration failed: {e}. Falling back to create_all.")
        logger.debug(f"[MIGRATION] [{trace_id}] Migration error details:", exc_info=True)


def create_app(
    session_factory: Optional[Callable] = None,
    waf_client: Optional[WafClient] = None,
    geo_enricher: Optional[GeoEnricher] = None,
    identity_provider: Optional[IdentityProvider] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application with its process-wide collaborators.

    Every handle defaults to the production implementation from settings;
    tests pass fakes instead.
    """
    settings = settings or default_settings
    session_factory = session_factory or SessionLocal
    waf_client = waf_client or build_waf_client(settings)
    geo_enricher = geo_enricher or GeoEnricher(session_factory, settings)
    if identity_provider is None:
        if not settings.AUTH_PROXY_SECRET:
            logger.warning("[AUTH] AUTH_PROXY_SECRET is not set; identity headers are ignored and admin actions will be denied")
        identity_provider = ProxyHeaderIdentityProvider(settings.AUTH_PROXY_SECRET)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up TwinGuard API...")
        _run_migrations()

        db = session_factory()
        try:
            Base.metadata.create_all(bind=db.get_bind())
            db.execute(text("SELECT 1"))
            logger.info("Database tables created/verified and connectivity confirmed")
        except Exception as e:
            trace_id = str(uuid.uuid4())
            logger.error(f"[{trace_id}] Database startup check failed: {e}", exc_info=True)
            # Keep serving; /health reports the database state
        finally:
            db.close()

        yield
        logger.info("Shutting down TwinGuard API...")

    app = FastAPI(
        title="TwinGuard API",
        description="Security telemetry backend: attack detection, attack log dashboard feed and admin audit trail",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.waf_client = waf_client
    app.state.geo_enricher = geo_enricher
    app.state.identity_provider = identity_provider

    # Added innermost first: ingress filter runs inside request logging, CORS wraps both
    app.add_middleware(
        IngressFilterMiddleware,
        session_factory=session_factory,
        waf_client=waf_client,
        geo_enricher=geo_enricher,
        settings=settings,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(TwinGuardError)
    async def twinguard_error_handler(request: Request, exc: TwinGuardError):
        trace_id = getattr(request.state, "trace_id", None) or str(uuid.uuid4())
        sanitized = sanitize(exc, exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": type(exc).__name__,
                "message": sanitized.public_message,
                "code": sanitized.reference_id,
                "trace_id": trace_id,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Unhandled errors leave through the sanitizer with a reference code."""
        trace_id = getattr(request.state, "trace_id", None) or str(uuid.uuid4())
        sanitized = sanitize(exc, "SYS_001")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "message": sanitized.public_message,
                "code": sanitized.reference_id,
                "trace_id": trace_id,
            },
        )

    @app.get("/")
    def root():
        return {
            "message": "TwinGuard API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.get("/health")
    def health_check():
        """Liveness: 200 without touching the database. Use /health/db for readiness."""
        return {"status": "ok"}

    @app.get("/health/db")
    def health_check_db():
        """Readiness: 200 if the database answers, 503 if not."""
        with session_scope(session_factory) as db:
            try:
                db.execute(text("SELECT 1"))
                return {"status": "ok", "database": "connected"}
            except Exception as e:
                trace_id = str(uuid.uuid4())
                logger.warning(f"[{trace_id}] Database health check failed: {e}")
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail={"status": "unhealthy", "database": "disconnected", "trace_id": trace_id},
                )

    return app


app = create_app()
