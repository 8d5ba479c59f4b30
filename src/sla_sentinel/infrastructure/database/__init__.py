"""
Database Infrastructure
=======================

Engine and session lifecycle for the request store, alerts and the email log.

One async engine per process (asyncpg in production, aiosqlite in tests).
Sessions commit when the unit of work finishes and roll back on error;
per-item isolation inside a unit of work uses SAVEPOINTs
(``session.begin_nested()``) in the repositories.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from sla_sentinel.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by the prediction and alerting models."""


_engine: Optional[AsyncEngine] = None
_sessions: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized, call init_database() at startup")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session factory.

    Args:
        database_url: Override for ``settings.database_url``
    """
    global _engine, _sessions

    # asyncpg takes ssl=, not libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    options = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
        options["pool_pre_ping"] = True

    _engine = create_async_engine(url, **options)
    _sessions = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    global _engine, _sessions

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessions = None


@asynccontextmanager
async def _unit_of_work() -> AsyncIterator[AsyncSession]:
    if _sessions is None:
        raise RuntimeError("Database not initialized, call init_database() at startup")

    async with _sessions() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with _unit_of_work() as session:
        yield session


@asynccontextmanager
async def get_session_context() -> AsyncIterator[AsyncSession]:
    """
    Session scope for scheduler jobs, outside any request.

    Usage:
        async with get_session_context() as session:
            report = await build_alert_sync_service(session, ...).run()
    """
    async with _unit_of_work() as session:
        yield session


async def create_tables() -> None:
    """Create missing tables. Development convenience, not a migration tool."""
    import sla_sentinel.alerting.infrastructure.models  # noqa: F401
    import sla_sentinel.prediction.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
