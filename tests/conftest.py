"""Pytest fixtures for testing."""
import os

# Must be set before any app imports that trigger Settings validation.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
# Ensure tests run in dev mode (bypasses auth) regardless of local .env
os.environ["DEV_MODE"] = "true"

from collections.abc import AsyncGenerator, Generator  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from models import Base, User  # noqa: E402


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Create a fresh in-memory SQLite engine with the schema for each test.

    StaticPool keeps the single in-memory database alive across connections.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create an async session on the test database."""
    session_factory = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a user to own bookmarks in service tests."""
    user = User(auth0_id="auth0|test-user", email="test@example.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second user for isolation tests."""
    user = User(auth0_id="auth0|other-user", email="other@example.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
def mock_fetch_metadata() -> Generator[AsyncMock]:
    """
    Patch the page fetch used during ingestion.

    Returns a titled page with a favicon and some HTML. Tests can change the
    mock's return_value.
    """
    from services.url_scraper import PageMetadata

    metadata = PageMetadata(
        title="Example Page",
        favicon_url="https://example.com/favicon.ico",
        html="<html><head><title>Example Page</title></head><body>Hi</body></html>",
    )
    with patch(
        "services.bookmark_service.fetch_metadata",
        new_callable=AsyncMock,
        return_value=metadata,
    ) as mock:
        yield mock


@pytest.fixture
def mock_generate_summary() -> Generator[AsyncMock]:
    """Patch summary generation used during ingestion."""
    with patch(
        "services.bookmark_service.generate_summary",
        new_callable=AsyncMock,
        return_value="A page about examples.",
    ) as mock:
        yield mock



@pytest.fixture
async def client(
    db_session: AsyncSession,
    mock_fetch_metadata: AsyncMock,  # noqa: ARG001
    mock_generate_summary: AsyncMock,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database session override."""
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import get_async_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
