"""Mapping of service failures onto HTTP errors."""

from typing import Any, Protocol

from fastapi import HTTPException, status

from storefront.domain.exceptions import ErrorKind

ERROR_KIND_STATUS: dict[str, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UPSTREAM: status.HTTP_502_BAD_GATEWAY,
}


class FailedResult(Protocol):
    error: str | None
    error_code: str | None
    error_kind: str | None
    details: dict[str, Any]


def http_error(result: FailedResult, default_code: str, default_message: str) -> HTTPException:
    """Build the HTTPException for a failed service result.

    Args:
        result: Service result with ``success`` False.
        default_code: Error code used when the result carries none.
        default_message: Message used when the result carries none.
    """
    return HTTPException(
        status_code=ERROR_KIND_STATUS.get(result.error_kind or "", status.HTTP_400_BAD_REQUEST),
        detail={
            "error_code": result.error_code or default_code,
            "message": result.error or default_message,
            "details": result.details or [],
        },
    )
