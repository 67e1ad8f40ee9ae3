"""
Standardized Error Handling for StoreGuard API.

Provides consistent error responses across all endpoints.
All errors return JSON with the structure {"error", "code", "request_id"}.
"""

import logging
import traceback
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Model
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str  # Human-readable message
    code: str  # Error code (e.g., "forbidden", "not_found")
    details: list[dict[str, Any]] | None = None
    request_id: str | None = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class StoreGuardError(Exception):
    """Base exception for StoreGuard errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = 500,
        details: list[dict] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class UnauthorizedError(StoreGuardError):
    """No identity, or the identity could not be verified."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            error_code="unauthorized",
            status_code=401,
        )


class ForbiddenError(StoreGuardError):
    """Valid identity, insufficient role or scope."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            error_code="forbidden",
            status_code=403,
        )


class NotFoundError(StoreGuardError):
    """Target resource absent."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(
            message=message,
            error_code="not_found",
            status_code=404,
        )


class InvalidRequestError(StoreGuardError):
    """Malformed input: missing fields, weak password, bad token."""

    def __init__(self, message: str, details: list[dict] | None = None):
        super().__init__(
            message=message,
            error_code="invalid",
            status_code=400,
            details=details,
        )


class InvalidTokenError(InvalidRequestError):
    """Reset token does not match any user."""

    def __init__(self, message: str = "Invalid reset token"):
        super().__init__(message)
        self.error_code = "invalid_token"


class ExpiredTokenError(StoreGuardError):
    """Reset token is past its window."""

    def __init__(self, message: str = "Reset token has expired"):
        super().__init__(
            message=message,
            error_code="expired_token",
            status_code=400,
        )


class RateLimitError(StoreGuardError):
    """Too many requests from one client."""

    def __init__(self, message: str = "Too many requests. Please slow down."):
        super().__init__(
            message=message,
            error_code="rate_limit_exceeded",
            status_code=429,
        )


class AccountLockedError(StoreGuardError):
    """Too many failed logins; the account is locked for a while."""

    def __init__(self, message: str, locked_until: datetime, time_remaining: str):
        super().__init__(
            message=message,
            error_code="account_locked",
            status_code=429,
            details=[{"locked_until": locked_until.isoformat(), "time_remaining": time_remaining}],
        )
        self.locked_until = locked_until


class InternalError(StoreGuardError):
    """Persistence or downstream failure."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(
            message=message,
            error_code="internal_error",
            status_code=500,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

def get_request_id(request: Request) -> Optional[str]:
    """Extract request ID from request."""
    return request.headers.get("X-Request-Id")


def error_body(message: str, code: str, request: Request, details: list | None = None) -> dict:
    body = {
        "error": message,
        "code": code,
        "request_id": get_request_id(request),
    }
    if details:
        body["details"] = details
    return body


async def storeguard_error_handler(request: Request, exc: StoreGuardError) -> JSONResponse:
    """Handle StoreGuard exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "StoreGuardError: %s - %s",
        exc.error_code,
        exc.message,
        extra={"error_code": exc.error_code, "path": request.url.path},
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, request, exc.details),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    # Map status codes to error codes
    error_codes = {
        400: "invalid",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        429: "rate_limit_exceeded",
        500: "internal_error",
        503: "service_unavailable",
    }

    error_code = error_codes.get(exc.status_code, "error")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
            error_code,
            request,
        ),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    details = []
    for error in exc.errors():
        details.append({
            "loc": [str(part) for part in error.get("loc", [])],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        })

    logger.info(
        "Validation error on %s: %d issues",
        request.url.path,
        len(details),
    )

    return JSONResponse(
        status_code=400,
        content=error_body("Invalid request body", "invalid", request, details),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        str(exc),
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
    )

    # Don't expose internal details
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", "internal_error", request),
    )


# =============================================================================
# Setup Function
# =============================================================================

def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Call during app initialization:
        setup_exception_handlers(app)
    """
    app.add_exception_handler(StoreGuardError, storeguard_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


__all__ = [
    "StoreGuardError",
    "ErrorResponse",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "InvalidRequestError",
    "InvalidTokenError",
    "ExpiredTokenError",
    "InternalError",
    "RateLimitError",
    "AccountLockedError",
    "setup_exception_handlers",
]
