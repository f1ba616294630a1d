"""Liveness and readiness probes."""

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


class DependencyStatus(BaseModel):
    healthy: bool
    latency_ms: float


class ReadinessResponse(HealthResponse):
    """Readiness report. Integrations only say whether credentials are configured."""

    database: DependencyStatus
    redis: DependencyStatus
    integrations: dict[str, bool]


async def _timed(check: Callable[[], Awaitable[bool]]) -> DependencyStatus:
    started = time.perf_counter()
    healthy = await check()
    return DependencyStatus(
        healthy=healthy, latency_ms=round((time.perf_counter() - started) * 1000, 2)
    )


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get("/health/detailed", response_model=ReadinessResponse, summary="Readiness probe")
async def detailed_health_check(response: Response) -> ReadinessResponse:
    """
    Check the database and Redis.

    The database is required, so the probe answers 503 when it is down.
    A Redis outage only degrades caching and rate limiting.
    """
    database = await _timed(check_database_connection)
    redis = await _timed(check_redis_connection)

    if not database.healthy:
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif not redis.healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return ReadinessResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database=database,
        redis=redis,
        integrations={
            "stripe": bool(settings.stripe_secret_key),
            "assistant": bool(settings.ai_api_key),
        },
    )


@router.get("/ping", summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
