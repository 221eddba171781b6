"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from wearsync.dependencies import AppSettings
from wearsync.services.database import get_pool, pool_ready

router = APIRouter(tags=["system"])
logger = logging.getLogger("wearsync.health")


@router.get("/health")
async def health_check(settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check.
    """
    db_ok = False
    if pool_ready():
        try:
            async with get_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_ok = True
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if db_ok else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
