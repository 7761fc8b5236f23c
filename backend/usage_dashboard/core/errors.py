"""
Standardized error responses for the Usage Dashboard API.

Every error body carries a machine-readable ``error`` code that clients
switch on (the login page and share-password prompt depend on them), plus a
human-readable ``message``.
"""

import logging
from enum import Enum
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from usage_dashboard.core.middleware import redact_exception_args, redact_share_tokens

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication errors
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHORIZED = "unauthorized"
    SHARE_INVALID = "share_invalid"
    SHARE_PASSWORD_REQUIRED = "share_password_required"
    SHARE_PASSWORD_INVALID = "share_password_invalid"
    CSRF_VALIDATION_FAILED = "csrf_validation_failed"

    # Authorization errors
    FORBIDDEN = "forbidden"
    SELF_DELETE_FORBIDDEN = "self_delete_forbidden"

    # Validation / resource errors
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"

    # System errors
    AUTH_NOT_CONFIGURED = "auth_not_configured"
    RATE_LIMITED = "rate_limited"
    DATA_SOURCE_UNAVAILABLE = "data_source_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL_ERROR = "internal_error"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str


class APIException(HTTPException):
    """Extended HTTPException with standardized error codes."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: list[ErrorDetail] | None = None,
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.extra = extra or {}
        super().__init__(status_code=status_code, detail=message, headers=headers)


# Pre-defined exceptions for common errors
class UnauthorizedError(APIException):
    """Authentication required or rejected."""

    def __init__(self, code: ErrorCode = ErrorCode.UNAUTHORIZED, message: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            message=message,
        )


class InvalidCredentialsError(UnauthorizedError):
    """Login rejected. Identical for unknown accounts and wrong passwords."""

    def __init__(self):
        super().__init__(code=ErrorCode.INVALID_CREDENTIALS, message="Invalid credentials")


class ForbiddenError(APIException):
    """Permission denied error."""

    def __init__(self, message: str = "Permission denied", code: ErrorCode = ErrorCode.FORBIDDEN):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code=code,
            message=message,
        )


class CsrfError(APIException):
    """CSRF double-submit check failed."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code=ErrorCode.CSRF_VALIDATION_FAILED,
            message="CSRF token missing or invalid",
        )


class NotFoundError(APIException):
    """Resource not found error."""

    def __init__(self, resource: str, resource_id: str | int | None = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=ErrorCode.NOT_FOUND,
            message=message,
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(
        self,
        message: str,
        details: list[ErrorDetail] | None = None,
        code: ErrorCode = ErrorCode.INVALID_REQUEST,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=code,
            message=message,
            details=details,
        )


class ConflictError(APIException):
    """Resource conflict error."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code=ErrorCode.CONFLICT,
            message=message,
        )


class RateLimitError(APIException):
    """Rate limit exceeded error with client backoff metadata."""

    def __init__(self, retry_after_ms: int, remaining: int, reset_at_ms: int):
        retry_after_seconds = max(1, -(-retry_after_ms // 1000))
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code=ErrorCode.RATE_LIMITED,
            message="Rate limit exceeded. Please try again later.",
            headers={
                "Retry-After": str(retry_after_seconds),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(reset_at_ms // 1000),
            },
            extra={
                "retryAfterMs": retry_after_ms,
                "remaining": remaining,
                "resetAt": reset_at_ms,
            },
        )


class AuthNotConfiguredError(APIException):
    """No signing secret or credential configured: nobody can get in."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=ErrorCode.AUTH_NOT_CONFIGURED,
            message="Authentication is not configured on this server",
        )


class DataSourceError(APIException):
    """Dashboard data could not be loaded."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=ErrorCode.DATA_SOURCE_UNAVAILABLE,
            message="Dashboard data source is unavailable",
        )


def create_error_response(
    code: ErrorCode,
    message: str,
    details: list[ErrorDetail] | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create a standardized error response dictionary."""
    response: dict[str, Any] = {
        "error": code.value,
        "message": message,
    }

    if details:
        response["details"] = [d.model_dump(exclude_none=True) for d in details]

    if extra:
        response.update(extra)

    return response


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle APIException and return standardized response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            extra=exc.extra,
        ),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle standard HTTPException and convert to standardized response."""
    status_to_code = {
        400: ErrorCode.INVALID_REQUEST,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.CONFLICT,
        429: ErrorCode.RATE_LIMITED,
    }

    code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "An error occurred"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(code=code, message=message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are a 400 with per-field details."""
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append(ErrorDetail(field=".".join(location) or None, message=error.get("msg", "Invalid value")))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=create_error_response(
            code=ErrorCode.INVALID_REQUEST,
            message="Request validation failed",
            details=details,
        ),
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Persistence failures on required operations surface as a 5xx."""
    logger.error(
        "Credential store error on %s %s: %s",
        request.method,
        redact_share_tokens(request.url.path),
        exc.__class__.__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.STORE_UNAVAILABLE,
            message="Credential store is unavailable",
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Share tokens are redacted from the exception before it is logged.
    """
    exc = redact_exception_args(exc)
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
        ),
    )


def api_rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """General API limit (slowapi) hit: same body shape as the other 429s.

    Synchronous because SlowAPIMiddleware calls it directly.
    """
    window_seconds = exc.limit.limit.get_expiry()
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=create_error_response(
            code=ErrorCode.RATE_LIMITED,
            message=f"Rate limit exceeded: {exc.detail}",
            extra={"retryAfterMs": window_seconds * 1000},
        ),
        headers={"Retry-After": str(window_seconds)},
    )
