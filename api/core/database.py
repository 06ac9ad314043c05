"""Database engine, session, and pool management.

Backends:
- PostgreSQL (asyncpg) in deployed environments
- SQLite (aiosqlite) for local runs and the test suite
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Annotated, NamedTuple, TypedDict

from fastapi import Depends, Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class PoolStatus(NamedTuple):
    """Connection pool status for health checks."""

    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class HealthCheckResult(TypedDict):
    """Return type for comprehensive_health_check."""

    database: bool
    pool: PoolStatus | None


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    # SQLite does not enforce foreign keys unless explicitly enabled.
    # Completion rows rely on ON DELETE CASCADE from habits.
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _setup_pool_event_listeners(engine: AsyncEngine) -> None:
    pool = engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return

    @event.listens_for(pool, "checkout")
    def _on_checkout(dbapi_conn, connection_record, connection_proxy):
        overflow = pool.overflow()
        if overflow > 0:
            logger.warning(
                "db.pool.overflow",
                extra={
                    "db_pool_checked_out": pool.checkedout(),
                    "db_pool_size": pool.size(),
                    "db_pool_overflow_count": overflow,
                },
            )


def create_engine(database_url: str | None = None) -> AsyncEngine:
    settings = get_settings()
    database_url = database_url or settings.database_url

    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=settings.db_echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _enable_sqlite_foreign_keys(engine)
        return engine

    engine = create_async_engine(
        database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args={
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms)
            }
        },
    )
    _setup_pool_event_listeners(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession]:
    """Auto-commits on success, rolls back on exception.

    Notes:
        - Use flush() if you need auto-generated IDs mid-request
        - Do NOT call commit() - this dependency handles it
        - A toggle (upsert + streak recompute + persist) therefore lands
          in a single transaction
    """
    session_maker: async_sessionmaker[AsyncSession] = request.app.state.session_maker
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            try:
                await session.rollback()
            except Exception as rollback_err:
                logger.warning("db.rollback.failed", extra={"error": str(rollback_err)})
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def init_db(engine: AsyncEngine) -> None:
    """Verify database is reachable. Schema managed via migrations."""
    logger.info("db.connectivity.verifying")

    async with asyncio.timeout(30):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.rollback()
    logger.info("db.connectivity.verified")


async def dispose_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db.engine.disposed")


async def check_db_connection(engine: AsyncEngine) -> None:
    """Verify database is reachable (30s timeout)."""
    async with asyncio.timeout(30):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.rollback()


def get_pool_status(engine: AsyncEngine) -> PoolStatus | None:
    """Returns pool status, or None if pool is not a QueuePool."""
    pool = engine.sync_engine.pool

    if isinstance(pool, QueuePool):
        return PoolStatus(
            pool_size=pool.size(),
            checked_out=pool.checkedout(),
            overflow=pool.overflow(),
            checked_in=pool.checkedin(),
        )
    return None


async def comprehensive_health_check(engine: AsyncEngine) -> HealthCheckResult:
    """Run database connectivity and pool status checks."""
    result: HealthCheckResult = {"database": False, "pool": None}

    try:
        await check_db_connection(engine)
        result["database"] = True
    except Exception:
        logger.warning("db.health_check.failed", exc_info=True)
        result["database"] = False

    result["pool"] = get_pool_status(engine)

    return result
