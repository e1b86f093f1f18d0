"""Shared fixtures for API tests."""
from collections.abc import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from api.main import app
from core.auth import get_current_user
from core.config import Settings, get_settings
from models.user import User


@pytest.fixture
async def user2_client(
    client: AsyncClient,  # noqa: ARG001
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient]:
    """
    Create an AsyncClient acting as a second user.

    Depends on `client` so the database session override is already in place.
    Only get_current_user is overridden, and only for requests made through
    this client; requests through `client` still resolve the dev user.
    """
    user2 = User(auth0_id='auth0|user2', email='user2@example.com')
    db_session.add(user2)
    await db_session.flush()

    async def user2_transport_app(scope, receive, send):  # noqa: ANN001, ANN202
        app.dependency_overrides[get_current_user] = lambda: user2
        try:
            await app(scope, receive, send)
        finally:
            app.dependency_overrides.pop(get_current_user, None)

    async with AsyncClient(
        transport=ASGITransport(app=user2_transport_app),
        base_url='http://test',
    ) as test_client:
        yield test_client


@pytest.fixture
def auth_enabled() -> Generator[None]:
    """Turn DEV_MODE off so requests go through real bearer-token auth."""
    def override_get_settings() -> Settings:
        return Settings(database_url='sqlite+aiosqlite:///:memory:', DEV_MODE='false')

    app.dependency_overrides[get_settings] = override_get_settings
    yield
    app.dependency_overrides.pop(get_settings, None)
