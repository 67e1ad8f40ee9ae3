"""
Health Router

Endpoints:
- /healthz - liveness check (is the process running?)
- /readyz  - readiness check (can we reach the database?)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.config import Settings, get_settings
from storeguard.core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Liveness probe. Returns 200 if the process is alive."""
    return {
        "status": "ok",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/readyz")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe. Returns 503 when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Readiness check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "checks": {"database": "error"}},
        )
    return {"status": "ready", "checks": {"database": "ok"}}
