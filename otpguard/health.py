"""
Health Checks
=============
Liveness of the two shared stores behind the verification routes.

The database holds challenges and attempt counters, so without it the
service is down. Redis only backs the rate limiter, which can fail open,
so losing it degrades the service instead.
"""

import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
import structlog

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class StoreCheck(BaseModel):
    ok: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None  # Exception class name only


class HealthReport(BaseModel):
    status: HealthStatus
    service: str
    version: str
    stores: Dict[str, StoreCheck]


async def _timed(name: str, ping: Callable[[], Awaitable[object]]) -> StoreCheck:
    started = time.perf_counter()
    try:
        await ping()
    except Exception as e:
        logger.error("Health check failed", store=name, error=str(e))
        return StoreCheck(ok=False, error=type(e).__name__)
    return StoreCheck(ok=True, latency_ms=round((time.perf_counter() - started) * 1000, 2))


async def ping_database(engine) -> StoreCheck:
    async def ping():
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    return await _timed("database", ping)


async def ping_redis(redis_client) -> StoreCheck:
    return await _timed("redis", redis_client.ping)


def overall_status(stores: Dict[str, StoreCheck]) -> HealthStatus:
    """Database down is fatal; any other store down only degrades."""
    database = stores.get("database")
    if database is not None and not database.ok:
        return HealthStatus.UNHEALTHY
    if any(not check.ok for check in stores.values()):
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def create_health_router(
    service_name: str,
    version: str,
    engine=None,
    redis_client=None,
) -> APIRouter:
    """
    Build ``GET /health`` (full report) and ``GET /health/ready``
    (503 until the database answers).
    """
    router = APIRouter(tags=["Health"])

    async def collect() -> Dict[str, StoreCheck]:
        stores: Dict[str, StoreCheck] = {}
        if engine is not None:
            stores["database"] = await ping_database(engine)
        if redis_client is not None:
            stores["redis"] = await ping_redis(redis_client)
        return stores

    @router.get("/health", response_model=HealthReport)
    async def health() -> HealthReport:
        stores = await collect()
        return HealthReport(
            status=overall_status(stores),
            service=service_name,
            version=version,
            stores=stores,
        )

    @router.get("/health/ready")
    async def ready():
        if engine is not None and not (await ping_database(engine)).ok:
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True}

    return router
