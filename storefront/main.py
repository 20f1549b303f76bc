"""Storefront order API main application module.

This module builds the FastAPI application: service container,
middleware, routers, exception handlers and the in-process sweep
scheduler.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.admin import router as admin_router
from storefront.api.dependencies import Container, build_container
from storefront.api.health import router as health_router
from storefront.api.middleware import setup_middleware
from storefront.api.orders import router as orders_router
from storefront.api.shipping import router as shipping_router
from storefront.api.webhooks import router as webhooks_router
from storefront.application.notifications import NotificationSink
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database
from storefront.infrastructure.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    container: Container = app.state.container
    settings = container.settings

    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "Starting storefront order API",
        version=settings.api_version,
        debug=settings.debug,
        carrier_configured=settings.carrier_configured,
        scheduler_enabled=settings.scheduler_enabled,
    )

    if settings.scheduler_enabled:
        container.scheduler.start()

    yield

    logger.info("Shutting down storefront order API")
    await container.scheduler.stop()
    await container.close()


# ============================================================================
# Exception Handlers
# ============================================================================


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        error_code = "ERROR"
        message = str(detail)
        details = []

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters as 400."""
    request_id = getattr(request.state, "request_id", None)
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": details,
            "request_id": request_id,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "details": [],
            "request_id": request_id,
        },
    )


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    carrier_transport: httpx.AsyncBaseTransport | None = None,
    notifications: NotificationSink | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Application settings (read from the environment when omitted).
        database: Existing database to use instead of ``settings.database_url``.
        carrier_transport: Custom httpx transport for the carrier client.
        notifications: Notification sink; logs only when omitted.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Storefront Order API",
        description="Checkout, order lifecycle, shipping rates and carrier/payment webhooks",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = build_container(
        settings,
        database=database,
        carrier_transport=carrier_transport,
        notifications=notifications,
    )

    # Setup custom middleware (request ID, admin API key, error handling)
    setup_middleware(app)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router, tags=["Health"])
    app.include_router(orders_router)
    app.include_router(admin_router)
    app.include_router(shipping_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
