"""
Fixtures for API tests: an httpx client bound to the app with the
database and notifier dependencies pointed at test doubles.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from atelier.api.deps import get_notifier
from atelier.core.security import create_access_token
from atelier.database.connection import get_db
from atelier.database.models import AccountRole
from atelier.main import app


@pytest.fixture
def notifier() -> AsyncMock:
    """Notifier double shared by every request in a test."""
    return AsyncMock()


@pytest.fixture
async def client(db_session, notifier) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client against the application.

    Yields:
        AsyncClient: Client whose requests share the test session
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for an account."""

    def _headers(account) -> dict:
        token = create_access_token(str(account.id), account.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def staff(make_account):
    return await make_account(email="staff@atelier.test", role=AccountRole.STAFF)


@pytest.fixture
async def customer(make_account):
    return await make_account(email="ada@example.com")
