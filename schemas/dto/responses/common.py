"""
Common response DTOs shared across multiple endpoints.

ErrorResponse    — standard error shape from AppError.to_dict()
HealthResponse   — GET /health
JobRunsResponse  — GET /api/v1/jobs/runs
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.rollup import JobRun


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


class JobRunsResponse(BaseModel):
    """Scheduler run history, newest first."""

    model_config = ConfigDict(populate_by_name=True)

    scheduler_running: bool
    in_flight: list[str]
    runs: list[JobRun]
