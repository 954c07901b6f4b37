"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Everything they return is built once by
create_app() and stored on app.state; tests replace those objects with
in-memory fakes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from errors import AuthenticationError
from jobs.scheduler import RollupScheduler
from services.aggregation_service import AggregationService
from services.alert_service import AlertService
from services.export_service import ExportService
from services.trend_service import TrendService


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


async def get_redis(request: Request):
    """Return the async Redis client from app.state (may be None if not configured)."""
    return request.app.state.redis


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Caller identity as set by the upstream auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Authentication required")
    return x_user_id.strip()


def get_aggregation_service(request: Request) -> AggregationService:
    return request.app.state.aggregation_service


def get_trend_service(request: Request) -> TrendService:
    return request.app.state.trend_service


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service


def get_export_service(request: Request) -> ExportService:
    return request.app.state.export_service


def get_scheduler(request: Request) -> Optional[RollupScheduler]:
    """The rollup scheduler, or None when scheduling is disabled."""
    return getattr(request.app.state, "scheduler", None)
