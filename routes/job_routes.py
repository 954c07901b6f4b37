"""
Scheduler observability.

GET /api/v1/jobs/runs — recent job runs, newest first (optionally one job).
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from dependencies import get_scheduler
from errors import NotFoundError, ValidationError
from jobs.scheduler import RollupScheduler
from schemas.dto.responses.common import JobRunsResponse

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.get("/runs", response_model=JobRunsResponse)
async def job_runs(
    scheduler: Annotated[Optional[RollupScheduler], Depends(get_scheduler)],
    job: Optional[str] = Query(default=None),
    limit: int = Query(default=50),
) -> JobRunsResponse:
    if scheduler is None:
        raise NotFoundError("Scheduler is disabled")
    if job is not None and job not in scheduler.job_names:
        raise ValidationError(
            f"Unknown job: {job!r}", field="job", details={"allowed": scheduler.job_names}
        )
    if limit < 1:
        raise ValidationError("Limit must be at least 1", field="limit")

    return JobRunsResponse(
        scheduler_running=scheduler.running,
        in_flight=[name for name in scheduler.job_names if scheduler.is_in_flight(name)],
        runs=scheduler.history(job=job, limit=limit),
    )
