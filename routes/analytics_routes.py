"""
Analytics read endpoints.

All routes live under /api/v1/analytics and identify the caller through the
X-User-Id header. Per-link routes take optional ISO 8601 start_date /
end_date query parameters describing the half-open window [start, end).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from dependencies import (
    get_aggregation_service,
    get_alert_service,
    get_current_user_id,
    get_trend_service,
)
from schemas.dto.requests.analytics import (
    CompareQuery,
    EventsQuery,
    ReportRequest,
    TimelineQuery,
    TrendingQuery,
    WindowQuery,
)
from schemas.dto.responses.common import ErrorResponse
from schemas.models.analytics import (
    AlertsView,
    CompareView,
    CustomReport,
    DeviceView,
    EventsPage,
    GeographicView,
    PerformanceView,
    ReferrerView,
    SummaryView,
    TimelineView,
    TrendingView,
    UserOverview,
)
from services.aggregation_service import AggregationService
from services.alert_service import AlertService
from services.trend_service import TrendService

router = APIRouter(
    prefix="/api/v1/analytics",
    tags=["analytics"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)

UserId = Annotated[str, Depends(get_current_user_id)]
Aggregation = Annotated[AggregationService, Depends(get_aggregation_service)]


@router.get("/links/{link_id}/summary", response_model=SummaryView)
async def link_summary(
    link_id: str,
    query: Annotated[WindowQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> SummaryView:
    start, end = query.window()
    return await service.summary(link_id, user_id, start, end)


@router.get("/links/{link_id}/geographic", response_model=GeographicView)
async def link_geographic(
    link_id: str,
    query: Annotated[WindowQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> GeographicView:
    start, end = query.window()
    return await service.geographic(link_id, user_id, start, end)


@router.get("/links/{link_id}/devices", response_model=DeviceView)
async def link_devices(
    link_id: str,
    query: Annotated[WindowQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> DeviceView:
    start, end = query.window()
    return await service.device(link_id, user_id, start, end)


@router.get("/links/{link_id}/referrers", response_model=ReferrerView)
async def link_referrers(
    link_id: str,
    query: Annotated[WindowQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> ReferrerView:
    start, end = query.window()
    return await service.referrer(link_id, user_id, start, end)


@router.get("/links/{link_id}/timeline", response_model=TimelineView)
async def link_timeline(
    link_id: str,
    query: Annotated[TimelineQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> TimelineView:
    start, end = query.window()
    return await service.timeline(link_id, user_id, query.granularity, start, end)


@router.get("/links/{link_id}/events", response_model=EventsPage)
async def link_events(
    link_id: str,
    query: Annotated[EventsQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> EventsPage:
    start, end = query.window()
    return await service.list_events(
        link_id, user_id, start, end, page=query.page, limit=query.limit
    )


@router.get("/links/{link_id}/performance", response_model=PerformanceView)
async def link_performance(
    link_id: str,
    user_id: UserId,
    service: Aggregation,
) -> PerformanceView:
    return await service.performance(link_id, user_id)


@router.get("/overview", response_model=UserOverview)
async def user_overview(user_id: UserId, service: Aggregation) -> UserOverview:
    return await service.user_overview(user_id)


@router.get("/compare", response_model=CompareView)
async def compare_links(
    query: Annotated[CompareQuery, Query()],
    user_id: UserId,
    service: Aggregation,
) -> CompareView:
    start, end = query.window()
    return await service.compare(query.parsed_link_ids, user_id, start, end)


@router.post("/reports", response_model=CustomReport)
async def custom_report(
    body: ReportRequest,
    user_id: UserId,
    service: Aggregation,
) -> CustomReport:
    return await service.custom_report(user_id, body.to_settings())


@router.get("/trending", response_model=TrendingView)
async def trending_links(
    query: Annotated[TrendingQuery, Query()],
    user_id: UserId,
    trends: Annotated[TrendService, Depends(get_trend_service)],
) -> TrendingView:
    return await trends.get_for_user(user_id, query.period, query.limit)


@router.get("/alerts", response_model=AlertsView)
async def analytics_alerts(
    user_id: UserId,
    alerts: Annotated[AlertService, Depends(get_alert_service)],
) -> AlertsView:
    return await alerts.get_alerts(user_id)
