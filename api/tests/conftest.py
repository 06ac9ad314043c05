"""Pytest configuration and shared fixtures.

This module provides:
- In-memory SQLite database (aiosqlite) with the full schema per test
- Async session / session maker fixtures for repository and service tests
- FastAPI app and HTTP client fixtures for route tests
- Trusted-header auth helpers
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import clear_settings_cache
from core.database import Base, create_engine, create_session_maker
from core.wide_event import init_wide_event

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Module-level constants for tests that need to set up data directly
TEST_USER_ID = "user_test_123456789"
OTHER_USER_ID = "user_other_987654321"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    In production RequestTimingMiddleware does this per request.
    """
    init_wide_event()
    yield


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database for each test, schema created from models."""
    engine = create_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Provide a database session for each test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def app(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[FastAPI]:
    """FastAPI app wired to the test database.

    ASGITransport does not run the lifespan, so app state is set here.
    """
    from main import app as fastapi_app

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = session_maker
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None

    yield fastapi_app


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Unauthenticated async HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def authenticated_client(
    app: FastAPI,
    test_user_id: str,
) -> AsyncGenerator[AsyncClient]:
    """Client sending the gateway's trusted user-id header."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": test_user_id},
    ) as ac:
        yield ac


@pytest.fixture
def test_user_id() -> str:
    return TEST_USER_ID


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"
