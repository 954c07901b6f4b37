"""
Health check endpoint.

GET /health — checks MongoDB, Redis and the rollup scheduler.
Rules:
- MongoDB failure → "unhealthy" (503) — raw events and rollups live there.
- Redis failure or absence → "degraded" (200) — views are computed uncached.
- Scheduler stopped → "degraded" (200); disabled by config is not a failure.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import get_db, get_redis, get_scheduler
from jobs.scheduler import RollupScheduler
from schemas.dto.responses.common import HealthResponse

router = APIRouter(tags=["health"])


def _degrade(overall: str) -> str:
    return "degraded" if overall == "healthy" else overall


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db=Depends(get_db),
    redis=Depends(get_redis),
    scheduler: Optional[RollupScheduler] = Depends(get_scheduler),
) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        await db.client.admin.command("ping")
        checks["mongodb"] = "ok"
    except Exception:
        checks["mongodb"] = "error"
        overall = "unhealthy"

    if redis is None:
        checks["redis"] = "not_configured"
        overall = _degrade(overall)
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "error"
            overall = _degrade(overall)

    if scheduler is None:
        checks["scheduler"] = "disabled"
    elif scheduler.running:
        checks["scheduler"] = "running"
    else:
        checks["scheduler"] = "stopped"
        overall = _degrade(overall)

    body = HealthResponse(status=overall, checks=checks)
    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=body.model_dump())
