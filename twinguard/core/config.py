"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


def _parse_list(v):
    """Parse a JSON array or comma-separated string into a list."""
    if isinstance(v, str):
        try:
            return json.loads(v)
        except json.JSONDecodeError:
            return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "TwinGuard"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL (full URL)",
    )

    # Hosted Postgres raw vars (PG*)
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGHOST: Optional[str] = None
    PGPORT: Optional[str] = None
    PGDATABASE: Optional[str] = None

    # Local docker-compose Postgres settings (fallback for local dev)
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "twinguard"

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full connection string)
        2. PG* vars (hosted Postgres plugin)
        3. Local docker-compose Postgres (POSTGRES_*)
        4. SQLite (local development without Docker)
        """
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Hosted providers hand out postgres:// which SQLAlchemy 2.x rejects
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+psycopg2://", 1)
            return url

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{self.PGHOST}:{port}/{self.PGDATABASE}"

        if os.getenv("POSTGRES_HOST") and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql+psycopg2://"
                f"{self.POSTGRES_USER}:{password}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./twinguard.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        return _parse_list(v)

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    LOG_DIR: str = Field(default="logs")
    LOG_FILE: str = Field(default="twinguard.log")
    LOG_FILE_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    LOG_FILE_BACKUP_COUNT: int = Field(default=5)
    QUIET_LOGGERS: Union[str, List[str]] = Field(
        default='["urllib3"]',
        description="Libraries held at WARNING or above (urllib3 logs every geo lookup connection at DEBUG)",
    )

    # WAF decision engine (hosted bot / shield / rate limit)
    WAF_DECISION_URL: Optional[str] = Field(
        default=None,
        description="Decision endpoint of the hosted WAF. Leave empty to allow all traffic past the WAF stage.",
    )
    WAF_API_KEY: Optional[str] = Field(default=None, description="Bearer key for the WAF decision endpoint")
    WAF_TIMEOUT_SECONDS: float = Field(default=2.0)
    WAF_FAIL_CLOSED: bool = Field(
        default=False,
        description="Block traffic (503) when the WAF is unreachable instead of letting it through",
    )

    # Ingress filter
    INGRESS_EXEMPT_PATHS: Union[str, List[str]] = Field(
        default='["/health", "/health/db", "/api/v1/health", "/docs", "/redoc", "/openapi.json"]',
    )
    SCAN_HEADERS: Union[str, List[str]] = Field(
        default='["referer"]',
        description="Request headers scanned for injection signatures in addition to the URL",
    )

    @field_validator("INGRESS_EXEMPT_PATHS", "SCAN_HEADERS", "QUIET_LOGGERS")
    @classmethod
    def parse_path_lists(cls, v):
        """Parse list-valued settings from string or list."""
        return _parse_list(v)

    # Geo enrichment
    GEO_LOOKUP_ENABLED: bool = Field(default=True)
    GEO_TIMEOUT_SECONDS: float = Field(default=3.0)
    GEO_PRIMARY_URL: str = Field(default="https://ipapi.co/{ip}/json/")
    GEO_FALLBACK_URL: str = Field(default="http://ip-api.com/json/{ip}")

    # Read API limits
    ATTACK_LOG_DEFAULT_LIMIT: int = Field(default=500)
    ATTACK_LOG_MAX_LIMIT: int = Field(default=1000)
    AUDIT_LOG_MAX_LIMIT: int = Field(default=500)

    # Identity provider proxy
    AUTH_PROXY_SECRET: Optional[str] = Field(
        default=None,
        description=(
            "Shared secret the authenticating proxy sends in X-Auth-Proxy-Secret. "
            "Without it identity headers are ignored and every privileged action is denied."
        ),
    )

    def is_waf_configured(self) -> bool:
        """Check if a WAF decision endpoint is configured and not empty."""
        return self.WAF_DECISION_URL is not None and self.WAF_DECISION_URL.strip() != ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
