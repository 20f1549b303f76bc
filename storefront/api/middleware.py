"""API middleware for the storefront order API.

Provides:
- Request ID correlation
- Admin API key authentication
- Error handling
"""

import hmac
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID for correlation.

    Generates or extracts a request ID and adds it to:
    - Request state for access in handlers
    - Response headers for client correlation
    - Log context for tracing
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request with correlation ID.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response with request ID header.
        """
        # Get or generate request ID
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid4())

        # Store in request state for handlers
        request.state.request_id = request_id

        # Add to log context
        structlog.contextvars.bind_contextvars(request_id=request_id)

        # Time the request
        start_time = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            # Calculate duration
            duration_ms = (time.perf_counter() - start_time) * 1000

            # Log request completion
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round(duration_ms, 2),
            )

            # Clear log context
            structlog.contextvars.unbind_contextvars("request_id")

        # Add request ID to response headers
        response.headers[self.HEADER_NAME] = request_id
        return response


# ============================================================================
# Admin API Key Middleware
# ============================================================================


ADMIN_PATH_PREFIX = "/admin"


def _unauthorized(error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={
            "error_code": error_code,
            "message": message,
            "details": [],
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


class AdminApiKeyMiddleware(BaseHTTPMiddleware):
    """Guards admin routes with a static API key.

    Expects "Authorization: Bearer <admin_api_key>". Customer routes are
    authenticated upstream and pass through untouched.
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Validate the admin API key for admin endpoints.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response from the handler, or a 401 error response.
        """
        # Skip auth for customer and public paths
        path = request.url.path.rstrip("/")
        if not (path == ADMIN_PATH_PREFIX or path.startswith(ADMIN_PATH_PREFIX + "/")):
            return await call_next(request)

        # Get Authorization header
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _unauthorized("UNAUTHORIZED", "Missing Authorization header")

        # Validate Bearer token format
        parts = auth_header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _unauthorized(
                "UNAUTHORIZED", "Invalid Authorization header format. Use 'Bearer <api_key>'"
            )

        # Validate API key
        expected = request.app.state.container.settings.admin_api_key
        if not hmac.compare_digest(parts[1].encode(), expected.encode()):
            logger.warning("Invalid API key", path=path, method=request.method)
            return _unauthorized("INVALID_API_KEY", "Invalid API key")

        request.state.authenticated = True
        return await call_next(request)


# ============================================================================
# Error Handling Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for consistent error handling.

    Catches unhandled exceptions and returns standardized error responses.
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Handle errors from downstream handlers.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response, or a 500 error response if the handler raised.
        """
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", None)
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
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
# Middleware Setup
# ============================================================================


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application.

    Middleware is added in reverse order (last added = first executed).

    Args:
        app: FastAPI application instance.
    """
    # Error handling (wraps the routes directly)
    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(AdminApiKeyMiddleware)

    # Request ID correlation (outermost, so 401s carry the header too)
    app.add_middleware(RequestIdMiddleware)
