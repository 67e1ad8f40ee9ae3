"""
Rate Limiting Configuration for StoreGuard API.

Uses slowapi with per-category limits. Authentication endpoints are the
main target (credential stuffing, reset-link flooding).
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from storeguard.core.config import get_settings
from storeguard.core.errors import RateLimitError, error_body
from storeguard.core.logging_middleware import get_client_ip

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """
    Rate limit key for reads: session if present, otherwise client IP.
    """
    session_id = request.cookies.get(get_settings().session_cookie_name)
    if session_id:
        # First 16 chars are enough for uniqueness
        return f"session:{session_id[:16]}"

    return get_client_address(request)


def get_client_address(request: Request) -> str:
    """
    Rate limit key for auth and write endpoints. Ignores cookies, which
    the client can rotate freely.
    """
    return f"ip:{get_client_ip(request)}"


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=["200/minute"],
    storage_uri=get_settings().rate_limit_storage_uri,
    strategy="fixed-window",
)


# =============================================================================
# Rate Limit Presets
# =============================================================================

# Login / forgot-password (prevent brute force and mail flooding)
RATE_AUTH = "5/minute"

# Token redemption and admin writes
RATE_WRITE = "30/minute"

# Reads (token validation probe, listings)
RATE_READ = "120/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON 429 with retry information."""
    limit_value = str(exc.detail) if hasattr(exc, "detail") else "Rate limit exceeded"

    logger.warning(
        "Rate limit exceeded: %s on %s %s",
        get_client_identifier(request),
        request.method,
        request.url.path,
    )

    error = RateLimitError()
    body = error_body(error.message, error.error_code, request)
    body["detail"] = limit_value
    body["retry_after"] = 60

    return JSONResponse(
        status_code=error.status_code,
        content=body,
        headers={"Retry-After": "60"},
    )


# =============================================================================
# Helper decorators for common patterns
# =============================================================================

def limit_auth(func):
    """Decorator for login and reset-request endpoints."""
    return limiter.limit(RATE_AUTH, key_func=get_client_address)(func)


def limit_write(func):
    """Decorator for token redemption and admin writes."""
    return limiter.limit(RATE_WRITE, key_func=get_client_address)(func)


def limit_read(func):
    """Decorator for read endpoints."""
    return limiter.limit(RATE_READ)(func)
