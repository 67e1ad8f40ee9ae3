"""
StoreGuard - FastAPI Application
Application factory: logging, error handlers, middleware and routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from storeguard.core.config import Settings, get_settings
from storeguard.core.csrf import CSRFConfig, CSRFMiddleware, configure_csrf
from storeguard.core.database import close_db, init_db
from storeguard.core.errors import setup_exception_handlers
from storeguard.core.logging_config import setup_logging
from storeguard.core.logging_middleware import RequestLoggingMiddleware
from storeguard.core.rate_limit import limiter, rate_limit_exceeded_handler
from storeguard.core.sessions import close_session_backend, configure_session_backend
from storeguard.routers import admin, auth, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("Starting %s %s (%s)", settings.app_name, settings.app_version, settings.environment)

    await init_db()
    configure_session_backend(settings.redis_url)

    yield

    await close_session_backend()
    await close_db()
    logger.info("Shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    setup_logging(
        level=settings.log_level,
        json_format=settings.log_json or settings.is_production,
    )

    app = FastAPI(
        title=settings.app_name,
        description="Authorization, CSRF and password-reset API for multi-tenant stores",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    setup_exception_handlers(app)

    # Rate limiting
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Last added is outermost: request logging wraps the CSRF check
    app.add_middleware(CSRFMiddleware, protection=configure_csrf(CSRFConfig.from_settings(settings)))
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(admin.router)

    return app


app = create_app()
