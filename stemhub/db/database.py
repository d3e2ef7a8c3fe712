"""
Async SQLAlchemy database setup for StemHub.

PostgreSQL in production (``postgresql+asyncpg``), SQLite for development
(``sqlite+aiosqlite``).  On SQLite every connection gets a busy timeout so
concurrent deciders queue on the writer lock instead of failing with
"database is locked", and foreign keys are switched on.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from stemhub.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every ``stemhub_*`` table."""


# Initialized by init_db() at startup
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Return the configured URL, falling back to a local SQLite file."""
    url = settings.database_url
    if not url:
        url = "sqlite+aiosqlite:///./stemhub.db"
        logger.warning("⚠️ No database URL configured, using SQLite: %s", url)
    return url


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db() -> None:
    """Create the async engine and session factory.

    DDL is owned by Alembic (``alembic upgrade head``); nothing is created here.
    """
    global _engine, _async_session_factory

    database_url = get_database_url()
    is_sqlite = database_url.startswith("sqlite")
    logger.info(
        "Initializing database: %s",
        database_url.split("@")[-1] if "@" in database_url else database_url,
    )

    connect_args: dict[str, Any] = {}
    engine_kwargs: dict[str, Any] = {}
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.db_busy_timeout
    else:
        engine_kwargs["pool_pre_ping"] = True

    _engine = create_async_engine(
        database_url,
        echo=settings.debug,
        connect_args=connect_args,
        **engine_kwargs,
    )
    if is_sqlite:
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    from stemhub.db import review_models  # noqa: F401

    logger.info("✅ Database initialized")


async def close_db() -> None:
    """Dispose of the engine (application shutdown)."""
    global _engine, _async_session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Commits whatever is still pending when the handler returns and rolls back
    on error.  Decision endpoints commit inside the service, so by the time
    this runs there is usually nothing left to flush.

    Usage:
        @router.get("/stages/{stage_id}/reviewers")
        async def list_reviewers(db: AsyncSession = Depends(get_db)):
            ...
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
