"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from personalization_service import __version__
from personalization_service.api.v1.dependencies import get_cache
from personalization_service.config import get_settings
from personalization_service.infrastructure.database.connection import ping_database
from personalization_service.infrastructure.redis import ping_redis
from personalization_service.services.cache import MemoCache

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


class CacheStatsResponse(BaseModel):
    size: int
    max_entries: int
    hits: int
    misses: int
    deduplicated: int
    evictions: int
    in_flight: int


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured",
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies that PostgreSQL and the Redis broker are reachable.
    """
    checks: dict[str, bool] = {}

    try:
        checks["postgres"] = await ping_database()
    except Exception as e:
        logger.warning("PostgreSQL readiness check failed", error=str(e))
        checks["postgres"] = False

    checks["redis"] = await ping_redis()

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}


@router.get("/health/cache", response_model=CacheStatsResponse)
async def cache_stats(cache: MemoCache = Depends(get_cache)) -> CacheStatsResponse:
    """Counters of the in-process memoization cache."""
    stats = cache.stats()
    return CacheStatsResponse(**vars(stats))
