"""Health check endpoint, public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from strainwatch.config import get_settings
from strainwatch.dependencies import AppServices
from strainwatch.services.database import get_pool, pool_ready

router = APIRouter(tags=["system"])
logger = logging.getLogger("strainwatch.health")


@router.get("/health")
async def health_check(services: AppServices) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Reports scheduler and stream counts, and probes the database when the
    Postgres credential backend is in use.
    """
    settings = get_settings()
    database = "not configured"
    if pool_ready():
        try:
            async with get_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = "connected"
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)
            database = "unreachable"

    return {
        "status": "degraded" if database == "unreachable" else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "polling_users": len(services.scheduler.active_users()),
        "live_subscribers": services.hub.subscriber_count(),
        "sink_pending": services.sink.pending,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
