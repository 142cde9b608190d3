"""Pytest configuration and shared fixtures.

This module provides:
- In-memory SQLite (aiosqlite) engine and sessions for repository/service tests
- Journey content written to a temporary CONTENT_DIR
- FastAPI test client for route tests
- Admin auth headers
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.cache import clear_all_caches
from core.config import clear_settings_cache
from core.database import Base, create_session_maker, enable_sqlite_savepoints
from core.wide_event import init_wide_event
from tests.factories import (
    JS_BASICS,
    PYTHON_BASICS,
    RETIRED_JOURNEY,
    write_journeys,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_ADMIN_TOKEN = os.environ["ADMIN_API_TOKEN"]
TEST_ADMIN_ID = "admin_test_123"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    Services use set_wide_event_fields() which requires context initialization.
    In production this is done by middleware; in tests we do it here.
    """
    init_wide_event()
    yield


@pytest.fixture(autouse=True)
def reset_caches() -> Generator[None]:
    """Reset settings and content caches around each test."""
    clear_settings_cache()
    clear_all_caches()
    yield
    clear_settings_cache()
    clear_all_caches()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Create a fresh in-memory database engine for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    enable_sqlite_savepoints(engine)

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
    """Provide a database session for each test.

    Route tests must not hold this open while making requests: the
    in-memory database has a single connection.
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Journey Content Fixtures
# =============================================================================


@pytest.fixture
def content_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point CONTENT_DIR at a temp directory with the standard journeys."""
    write_journeys(tmp_path, [JS_BASICS, PYTHON_BASICS, RETIRED_JOURNEY])
    monkeypatch.setenv("CONTENT_DIR", str(tmp_path))
    clear_settings_cache()
    clear_all_caches()
    return tmp_path


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def app(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """FastAPI app wired to the test database (lifespan is not run)."""
    from main import app as fastapi_app

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = session_maker
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None
    return fastapi_app


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Anonymous async HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {
        "Authorization": f"Bearer {TEST_ADMIN_TOKEN}",
        "X-Admin-User-Id": TEST_ADMIN_ID,
    }


@pytest_asyncio.fixture(scope="function")
async def admin_client(
    app: FastAPI, admin_headers: dict[str, str]
) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client that sends valid admin credentials."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=admin_headers,
    ) as ac:
        yield ac


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"
