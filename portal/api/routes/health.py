"""Probe and runtime statistics endpoints for deployments."""

import time

from fastapi import APIRouter, Request, Response, status

from portal.api.middleware.latency_logging import get_latency_stats
from portal.core.cache import get_cache
from portal.core.supabase import check_database_connection
from portal.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health_check() -> HealthResponse:
    """Answer 200 whenever the process is serving; no backing services are touched."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable"}},
    summary="Readiness probe",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Probe the database and answer 503 while it is unreachable."""
    started = time.perf_counter()
    db = await check_database_connection()
    database = CheckResult(
        name="database",
        healthy=db["healthy"],
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
        error=db.get("error"),
    )

    if not database.healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status=HealthStatus.UNHEALTHY, checks=[database])
    return ReadinessResponse(status=HealthStatus.HEALTHY, checks=[database])


@router.get("/health/stats", summary="Runtime statistics")
async def runtime_stats(request: Request) -> dict:
    """Report request latency, rate limiter and cache counters for this process."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    return {
        "latency": get_latency_stats().get_stats(),
        "rate_limiter": limiter.get_stats() if limiter else None,
        "cache": get_cache().get_stats(),
    }
