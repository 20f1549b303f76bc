"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from storefront.api.dependencies import Container, get_container

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    container: Annotated[Container, Depends(get_container)],
) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storefront-orders",
        version=container.settings.api_version,
    )


@router.get("/ready")
async def readiness_check(
    container: Annotated[Container, Depends(get_container)],
) -> JSONResponse:
    """Check the database is reachable.

    Returns:
        200 with "ready", or 503 when the database does not answer.
    """
    try:
        async with container.database.unit_of_work() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
        )
    return JSONResponse(content={"status": "ready"})
