"""
StoreGuard - CSRF Protection
Double-submit cookie scheme.

Flow:
- GET /api/auth/csrf-token issues a random token as an http-only cookie
  and echoes it in the X-CSRF-Token response header / JSON body.
- The client sends the token back in the X-CSRF-Token request header on
  every state-changing request.
- The request is accepted only when cookie and header carry the same token.

Issuing a new token overwrites the old cookie, so one token is active per
client at a time.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storeguard.core.config import Settings
from storeguard.core.logging_middleware import get_client_ip
from storeguard.core.tokens import generate_token

logger = logging.getLogger("storeguard.csrf")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_FAILURE_MESSAGE = "CSRF token validation failed"
RESPONSE_HEADER = "X-CSRF-Token"


@dataclass
class CSRFConfig:
    cookie_name: str = "csrf-token"
    header_name: str = "x-csrf-token"
    token_length: int = 32
    max_age: int = 60 * 60  # 1 hour
    secure: bool = False  # True in production
    exempt_paths: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CSRFConfig":
        return cls(
            cookie_name=settings.csrf_cookie_name,
            header_name=settings.csrf_header_name,
            token_length=settings.csrf_token_length,
            max_age=settings.csrf_max_age,
            secure=settings.is_production,
            exempt_paths=tuple(settings.csrf_exempt_paths),
        )


def constant_time_equals(a: str, b: str) -> bool:
    """
    Compare two strings without an early exit on the first mismatch.

    Every character is XORed into an accumulator, so the time taken
    depends only on the length, not on where the strings differ.
    """
    if len(a) != len(b):
        return False

    result = 0
    for x, y in zip(a, b):
        result |= ord(x) ^ ord(y)
    return result == 0


class CSRFProtection:
    """
    Issues and validates double-submit CSRF tokens.

    Usage:
        csrf = CSRFProtection(CSRFConfig.from_settings(settings))
        response = csrf.issue(JSONResponse({...}))
        if not csrf.validate(request):
            ...
    """

    def __init__(self, config: Optional[CSRFConfig] = None):
        self.config = config or CSRFConfig()

    def generate_token(self) -> str:
        return generate_token(self.config.token_length)

    def get_token(self, request: Request) -> Optional[str]:
        """Token carried by the request cookie, if any."""
        return request.cookies.get(self.config.cookie_name) or None

    def issue(self, response: Response, token: Optional[str] = None) -> Response:
        """Set the CSRF cookie and mirror the same value in the response header."""
        csrf_token = token or self.generate_token()

        response.set_cookie(
            key=self.config.cookie_name,
            value=csrf_token,
            max_age=self.config.max_age,
            path="/",
            secure=self.config.secure,
            httponly=True,
            samesite="strict",
        )
        response.headers[RESPONSE_HEADER] = csrf_token
        return response

    def validate(self, request: Request) -> bool:
        cookie_token = self.get_token(request)
        header_token = request.headers.get(self.config.header_name)

        if not cookie_token or not header_token:
            return False

        return constant_time_equals(cookie_token, header_token)

    def is_exempt(self, request: Request) -> bool:
        if request.method.upper() in SAFE_METHODS:
            return True
        path = request.url.path
        return any(
            path == exempt or path.startswith(exempt.rstrip("/") + "/")
            for exempt in self.config.exempt_paths
        )

    def check(self, request: Request) -> Optional[JSONResponse]:
        """
        Returns None when the request may proceed, or a 403 response.

        The rejection is logged with path, method, client IP and user agent.
        The tokens themselves are never logged.
        """
        if self.is_exempt(request):
            return None

        if self.validate(request):
            return None

        logger.warning(
            "CSRF validation failed: %s %s",
            request.method,
            request.url.path,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client_ip": get_client_ip(request),
                "user_agent": request.headers.get("User-Agent", "unknown"),
            },
        )
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": CSRF_FAILURE_MESSAGE, "code": "csrf_failed"},
        )


class CSRFMiddleware(BaseHTTPMiddleware):
    """Rejects state-changing requests that lack a matching CSRF pair."""

    def __init__(self, app, protection: CSRFProtection):
        super().__init__(app)
        self.protection = protection

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rejection = self.protection.check(request)
        if rejection is not None:
            return rejection
        return await call_next(request)


_csrf_protection: Optional[CSRFProtection] = None


def get_csrf_protection() -> CSRFProtection:
    """Get the configured CSRF protection (FastAPI dependency)."""
    global _csrf_protection
    if _csrf_protection is None:
        _csrf_protection = CSRFProtection()
    return _csrf_protection


def configure_csrf(config: CSRFConfig) -> CSRFProtection:
    """Install the process-wide CSRF protection. Call during app startup."""
    global _csrf_protection
    _csrf_protection = CSRFProtection(config)
    return _csrf_protection
