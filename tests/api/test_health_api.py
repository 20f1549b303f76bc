"""Tests for health check endpoints."""

from fastapi import status


async def test_health_check(client, settings) -> None:
    """Test health check endpoint returns healthy status."""
    response = await client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "status": "healthy",
        "service": "storefront-orders",
        "version": settings.api_version,
    }


async def test_readiness_check(client) -> None:
    """Test readiness check reaches the database."""
    response = await client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ready"}


async def test_request_id_generated(client) -> None:
    """Every response carries a request id."""
    response = await client.get("/health")

    assert response.headers["X-Request-ID"]


async def test_request_id_propagated(client) -> None:
    """A caller-supplied request id is echoed back."""
    response = await client.get("/health", headers={"X-Request-ID": "trace-123"})

    assert response.headers["X-Request-ID"] == "trace-123"
