"""
Blaze Backend — Database Session Management
============================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine, provides a session dependency that
       auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at module import; sessions are created per-request.

Connection Strategy:
    SQLite (development, tests): aiosqlite driver, SQLAlchemy picks its own pool.
    PostgreSQL (production): asyncpg driver with the configured pool sizing.
    Either way the schema is created at startup by init_models(), which
    retries while the database is still coming up.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    retry,
    stop_after_attempt,
    wait_fixed,
    retry_if_exception_type,
    before_sleep_log,
)

from blaze.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> dict:
    """Pool options are only meaningful for server databases."""
    options = {"echo": settings.log_level == "DEBUG"}
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options())

# expire_on_commit=False: attributes stay readable after the request commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (users, alarms, subscriptions)."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction and re-raises
        5. Always: closes the session (returns connection to pool)

    Note for GET /api/confirm:
        The rendezvous commits its read-only transaction before it suspends,
        so the pooled connection is not held for the whole confirmation wait.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
@retry(
    retry=retry_if_exception_type((OperationalError, ConnectionError, OSError)),
    stop=stop_after_attempt(settings.db_connect_attempts),
    wait=wait_fixed(settings.db_connect_wait),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def init_models() -> None:
    """
    What:  Creates any missing tables.
    When:  Called during application startup (lifespan) and by the test suite.
    Why retry: In docker-compose setups the database container often accepts
           connections a few seconds after the API container starts.
    """
    # Import models so they register with Base.metadata
    from blaze.models import alarm, subscription, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def ping_database() -> bool:
    """Runs SELECT 1; used by the health check."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database ping failed: %s", str(e))
        return False


async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
