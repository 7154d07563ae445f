"""
SQLAlchemy engine / session factory (sync).

Two engines mirror the two credential tiers: the service engine used by
every request handler, and an optional read-only engine used by the keepalive endpoint.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from portal.config import settings


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 10}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

_readonly_url = settings.database_readonly_url or settings.database_url
readonly_engine = (
    engine if _readonly_url == settings.database_url
    else create_engine(_readonly_url, **_engine_kwargs(_readonly_url))
)
ReadonlySessionLocal = sessionmaker(bind=readonly_engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields a DB session and always closes it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
