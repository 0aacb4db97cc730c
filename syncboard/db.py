"""Database engine and session helpers for the external fact store."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import Session, sessionmaker

from syncboard.config import load_config

_engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None

_logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def _synchronous_url(url: URL) -> URL:
    driver = url.drivername.lower()
    if driver in {"sqlite", "sqlite+aiosqlite"}:
        return url.set(drivername="sqlite+pysqlite")
    if driver in {"postgres", "postgresql", "postgresql+asyncpg"}:
        return url.set(drivername="postgresql+psycopg")
    return url


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url`` suitable for threaded access."""

    sync_url = _synchronous_url(make_url(database_url))
    connect_args: dict[str, object] = {}
    if sync_url.drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(sync_url, future=True, pool_pre_ping=True, connect_args=connect_args)


def _dispose_engine() -> None:
    global _engine, SessionLocal

    if _engine is not None:
        _engine.dispose()

    _engine = None
    SessionLocal = None


def _ensure_engine() -> Engine:
    global _engine, SessionLocal

    database_url = load_config().database.url
    target_url = _synchronous_url(make_url(database_url)).render_as_string(hide_password=False)

    if _engine is not None and _engine.url.render_as_string(hide_password=False) == target_url:
        return _engine

    _dispose_engine()
    _engine = build_engine(database_url)
    SessionLocal = sessionmaker(
        bind=_engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    _logger.info("Fact store engine created", extra={"event": "database.engine", "driver": _engine.url.drivername})
    return _engine


def get_session() -> Session:
    if SessionLocal is None:
        _ensure_engine()
    if SessionLocal is None:
        raise RuntimeError("Database session factory is not initialized.")
    return SessionLocal()


@contextmanager
def session_scope() -> Iterator[Session]:
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_engine_for_tests() -> None:
    """Reset the cached engine/session so tests get a clean database handle."""

    _dispose_engine()


__all__ = [
    "SessionFactory",
    "SessionLocal",
    "build_engine",
    "get_session",
    "reset_engine_for_tests",
    "session_scope",
]
