"""Health check endpoints. No authentication required.

- /health       legacy, backward-compatible
- /health/live  liveness probe (always 200)
- /health/ready readiness probe (checks dependencies)
"""

import asyncio
import time

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from jobforge.api.deps import get_api_client, get_redis
from jobforge.core.api_client import PipelineApiClient
from jobforge.core.metrics import store_health_check_duration_seconds, store_health_status

router = APIRouter()
logger = structlog.stdlib.get_logger("jobforge.health")

# Per-dependency timeout for health checks (seconds)
_HEALTH_CHECK_TIMEOUT = 3.0


@router.get("/health")
async def health_check():
    """Legacy health check: backward compatible."""
    return {"status": "healthy", "service": "jobforge"}


@router.get("/health/live")
async def liveness():
    """Liveness probe: process is alive."""
    return {"status": "live"}


async def _check_redis(redis: Redis) -> dict:
    """Check Redis connectivity (degraded, not failing: drafts are best-effort)."""
    start = time.monotonic()
    try:
        await asyncio.wait_for(redis.ping(), timeout=_HEALTH_CHECK_TIMEOUT)  # type: ignore[misc]
        store_health_check_duration_seconds.labels(store="redis").observe(
            time.monotonic() - start
        )
        store_health_status.labels(store="redis").set(1)
        return {"status": "ok", "_healthy": True}
    except Exception as exc:
        store_health_check_duration_seconds.labels(store="redis").observe(
            time.monotonic() - start
        )
        store_health_status.labels(store="redis").set(0)
        logger.info("readiness_check_degraded", dependency="redis", error=str(exc))
        return {"status": "degraded", "detail": str(exc), "_healthy": True}


async def _check_pipeline_api(api: PipelineApiClient) -> dict:
    """Check the remote pipeline API. Without it nothing can be validated or run."""
    start = time.monotonic()
    try:
        ok = await asyncio.wait_for(api.ping(), timeout=_HEALTH_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        ok = False
    store_health_check_duration_seconds.labels(store="pipeline_api").observe(
        time.monotonic() - start
    )
    store_health_status.labels(store="pipeline_api").set(1 if ok else 0)
    if not ok:
        logger.warning("readiness_check_failed", dependency="pipeline_api")
        return {"status": "error", "_healthy": False}
    return {"status": "ok", "_healthy": True}


@router.get("/health/ready")
async def readiness(
    redis: Redis = Depends(get_redis),
    api: PipelineApiClient = Depends(get_api_client),
):
    """Readiness probe: checks Redis and the remote pipeline API concurrently."""
    results = await asyncio.gather(_check_redis(redis), _check_pipeline_api(api))

    names = ["redis", "pipeline_api"]
    checks: dict[str, dict] = {}
    healthy = True

    for name, result in zip(names, results):
        if not result.pop("_healthy", True):
            healthy = False
        checks[name] = result

    status_code = 200 if healthy else 503
    return JSONResponse(
        content={"status": "ready" if healthy else "not_ready", "checks": checks},
        status_code=status_code,
    )
