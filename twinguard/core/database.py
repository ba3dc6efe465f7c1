"""
Database configuration and session management.

One engine per process, built from settings. Request handlers get a session
from ``get_db``; code running outside a request (ingress middleware writes,
background geo enrichment, health checks) opens one with ``session_scope``.
Timestamps are stored timezone-aware and read back through ``as_utc``.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from twinguard.core.config import get_settings

settings = get_settings()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for ``database_url``; SQLite gets a connection shareable across threadpool workers."""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


# DATABASE_URL > PG* vars > docker-compose > SQLite
engine = build_engine(settings.sqlalchemy_database_uri, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all database models using SQLAlchemy 2.x style."""
    pass


def utcnow() -> datetime:
    """Timezone-aware UTC now, used as the Python-side column default."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@contextmanager
def session_scope(session_factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """Session that is always closed; committing is left to the stores."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()


def get_db():
    """Dependency for getting database session."""
    with session_scope() as db:
        yield db
