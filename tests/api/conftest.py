"""Fixtures for HTTP-level tests."""

import httpx
import pytest

from storefront.main import create_app


@pytest.fixture
def app(settings, database, carrier_api, notifications):
    """Application wired to the test database and fake carrier."""
    return create_app(
        settings,
        database=database,
        carrier_transport=httpx.MockTransport(carrier_api.handler),
        notifications=notifications,
    )


@pytest.fixture
async def client(app):
    """HTTP client talking to the application in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    await app.state.container.carrier.close()


@pytest.fixture
def admin_headers(settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {settings.admin_api_key}"}
