"""
Monitoring Routes

Liveness/readiness probes, the Redis round-trip check and Prometheus metrics.
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from churchsite.auth import require_admin
from churchsite.config import settings
from churchsite.database import get_db
from churchsite.models.user import User
from churchsite.utils.cache import CacheManager, get_cache_manager
from churchsite.utils.metrics import set_app_info, update_health_status, update_uptime
from churchsite.utils.view_store import ViewStore, get_view_store

router = APIRouter(tags=["Monitoring"])

APP_START_TIME = time.time()

set_app_info(version=settings.app_version, environment=settings.environment)

HEALTH_CHECK_KEY = "health:check"


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    version: str
    uptime_seconds: float


class ReadinessStatus(BaseModel):
    status: str
    timestamp: str
    checks: dict[str, dict[str, Any]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """
    Liveness probe endpoint.

    Does not touch the database or Redis.
    """
    return HealthStatus(
        status="healthy",
        timestamp=_now(),
        version=settings.app_version,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
    )


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    view_store: ViewStore = Depends(get_view_store),
) -> ReadinessStatus:
    """
    Readiness probe endpoint.

    The database and the view store must both answer. Without the view
    store pages still render but views stop being counted.
    """
    checks = {
        "database": await _check_database(db),
        "view_store": await _check_view_store(view_store),
    }
    all_healthy = all(check["status"] == "healthy" for check in checks.values())

    return ReadinessStatus(status="ready" if all_healthy else "not_ready", timestamp=_now(), checks=checks)


@router.get("/health/redis")
async def redis_health_check(
    current_user: User = Depends(require_admin),
    cache: CacheManager = Depends(get_cache_manager),
) -> dict[str, Any]:
    """
    Redis round-trip check: set, get and delete a short-lived key.

    **Requires**: Admin role
    """
    if not cache.enabled:
        update_health_status("redis", healthy=False)
        return {
            "status": "unhealthy",
            "redis": {"connected": False, "operations_ok": False, "error": "Cache is disabled or unreachable"},
            "timestamp": _now(),
        }

    start = time.perf_counter()
    probe = str(time.time_ns())
    set_ok = await cache.set(HEALTH_CHECK_KEY, probe, ttl=10)
    get_ok = await cache.get(HEALTH_CHECK_KEY) == probe
    delete_ok = await cache.delete(HEALTH_CHECK_KEY)
    latency_ms = (time.perf_counter() - start) * 1000

    operations_ok = set_ok and get_ok and delete_ok
    update_health_status("redis", healthy=operations_ok)

    return {
        "status": "healthy" if operations_ok else "unhealthy",
        "redis": {"connected": True, "latency_ms": round(latency_ms, 2), "operations_ok": operations_ok},
        "timestamp": _now(),
    }


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """Prometheus metrics in text exposition format."""
    update_uptime(APP_START_TIME)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _check_database(db: AsyncSession) -> dict[str, Any]:
    try:
        start = time.perf_counter()
        await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        update_health_status("database", healthy=True)
        return {"status": "healthy", "latency_ms": round(latency_ms, 2), "message": "Database connection successful"}
    except Exception as e:
        update_health_status("database", healthy=False)
        return {"status": "unhealthy", "error": str(e), "message": "Database connection failed"}


async def _check_view_store(view_store: ViewStore) -> dict[str, Any]:
    start = time.perf_counter()
    healthy = await view_store.ping()
    latency_ms = (time.perf_counter() - start) * 1000
    update_health_status("view_store", healthy=healthy)

    if healthy:
        return {"status": "healthy", "latency_ms": round(latency_ms, 2), "backend": type(view_store).__name__}
    return {"status": "unhealthy", "backend": type(view_store).__name__, "message": "View store unreachable"}
