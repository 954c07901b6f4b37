"""
Aggregation engine: per-link and per-user analytics views.

Every per-link operation validates its input, checks ownership through the
LinkRepository, and only then consults the cache, so a cached view is never
served to a caller who may not see it. Misses are computed from the
EventStore and written through to AnalyticsCache under the view's TTL class.

Unique visitor counts always come from the VisitorTracker.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from errors import ForbiddenError, ValidationError
from infrastructure.cache.analytics_cache import AnalyticsCache
from infrastructure.cache.keys import CacheTTL, build_cache_key
from infrastructure.visitors import VisitorTracker
from repositories.protocol import EventStore, LinkRepository
from schemas.models.analytics import (
    CompareView,
    CountryClicks,
    CustomReport,
    DateCount,
    DateRange,
    DayOfWeekItem,
    DeviceView,
    EventRecord,
    EventsPage,
    GeographicDiversity,
    GeographicView,
    HourItem,
    LinkClicks,
    LinkComparison,
    PerformanceView,
    ReferrerView,
    ReportLink,
    ReportSettings,
    SummaryView,
    TimelinePoint,
    TimelineView,
    UserOverview,
)
from schemas.models.query import AggregationQuery, EventFilter, GroupKey, QueryPlan, SortOrder
from services import breakdown as dims
from services.breakdown import breakdown, percentage
from shared.logging import get_logger, should_sample
from shared.time_bucket_utils import Granularity, get_bucket_config
from shared.validators import (
    MAX_COMPARE_LINKS,
    MAX_REPORT_LINKS,
    validate_link_id,
    validate_link_ids,
    validate_window,
)

log = get_logger(__name__)

MAX_EVENTS_PAGE_SIZE = 1000
COMPARE_TOP_COUNTRIES = 5

_WEEKDAYS = {
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "7": "Sunday",
}


def parse_granularity(value: str) -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        raise ValidationError(
            f"Invalid granularity: {value!r}",
            field="granularity",
            details={"allowed": [g.value for g in Granularity]},
        )


class AggregationService:
    def __init__(
        self,
        events: EventStore,
        links: LinkRepository,
        visitors: VisitorTracker,
        cache: AnalyticsCache,
    ) -> None:
        self.events = events
        self.links = links
        self.visitors = visitors
        self.cache = cache

    # ── ownership ────────────────────────────────────────────────────────────

    async def authorize(self, link_id: str, user_id: str) -> None:
        """Raise NotFoundError for an unknown link, ForbiddenError for a foreign one."""
        owner_id = await self.links.lookup_owner(link_id)
        if owner_id is None or owner_id != user_id:
            log.warning("analytics_access_denied", link_id=link_id, user_id=user_id)
            raise ForbiddenError("You do not have access to this link's analytics")

    async def prepare_query(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
        granularity: Optional[Granularity] = None,
    ) -> AggregationQuery:
        validate_link_id(link_id)
        validate_window(start, end, granularity)
        await self.authorize(link_id, user_id)
        return AggregationQuery(
            link_ids=[link_id],
            start=start,
            end=end,
            group_by=granularity.value if granularity else None,
        )

    # ── per-link views ───────────────────────────────────────────────────────

    async def summary(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SummaryView:
        query = await self.prepare_query(link_id, user_id, start, end)

        async def compute() -> SummaryView:
            flt = query.to_filter()
            total = await self.events.count(flt)
            by_date = await self.events.aggregate(
                QueryPlan(
                    filter=flt,
                    group_by=(GroupKey(name="date", path="timestamp", date_format="%Y-%m-%d"),),
                    sort=SortOrder.KEY_ASC,
                )
            )
            return SummaryView(
                total_clicks=total,
                unique_visitors=await self.visitors.count(link_id),
                clicks_by_date=[DateCount(**row) for row in by_date],
                top_countries=await breakdown(self.events, flt, dims.COUNTRY, total),
                top_devices=await breakdown(self.events, flt, dims.DEVICE_TYPE, total),
                top_browsers=await breakdown(self.events, flt, dims.BROWSER, total),
                top_os=await breakdown(self.events, flt, dims.OS, total),
                top_referrers=await breakdown(self.events, flt, dims.REFERRER, total),
                referrer_types=await breakdown(self.events, flt, dims.REFERRER_TYPE, total),
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("summary", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(key, SummaryView, CacheTTL.SUMMARY, compute)

    async def geographic(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> GeographicView:
        query = await self.prepare_query(link_id, user_id, start, end)

        async def compute() -> GeographicView:
            flt = query.to_filter()
            total = await self.events.count(flt)
            return GeographicView(
                total_clicks=total,
                countries=await breakdown(
                    self.events, flt, dims.COUNTRY_WITH_COORDINATES, total
                ),
                regions=await breakdown(self.events, flt, dims.REGION, total),
                cities=await breakdown(self.events, flt, dims.CITY, total),
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("geographic", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(
            key, GeographicView, CacheTTL.GEOGRAPHIC, compute
        )

    async def device(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> DeviceView:
        query = await self.prepare_query(link_id, user_id, start, end)

        async def compute() -> DeviceView:
            flt = query.to_filter()
            total = await self.events.count(flt)
            return DeviceView(
                total_clicks=total,
                device_types=await breakdown(self.events, flt, dims.DEVICE_TYPE, total),
                brands=await breakdown(self.events, flt, dims.BRAND, total),
                models=await breakdown(self.events, flt, dims.DEVICE_MODEL, total),
                operating_systems=await breakdown(self.events, flt, dims.OS, total),
                browsers=await breakdown(self.events, flt, dims.BROWSER, total),
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("device", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(key, DeviceView, CacheTTL.DEVICE, compute)

    async def referrer(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ReferrerView:
        query = await self.prepare_query(link_id, user_id, start, end)

        async def compute() -> ReferrerView:
            flt = query.to_filter()
            total = await self.events.count(flt)
            return ReferrerView(
                total_clicks=total,
                referrers=await breakdown(self.events, flt, dims.REFERRER, total),
                referrer_types=await breakdown(self.events, flt, dims.REFERRER_TYPE, total),
                utm_campaigns=await breakdown(self.events, flt, dims.UTM_CAMPAIGN, total),
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("referrer", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(
            key, ReferrerView, CacheTTL.REFERRER, compute
        )

    async def timeline(
        self,
        link_id: str,
        user_id: str,
        granularity: str = Granularity.DAY.value,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> TimelineView:
        gran = parse_granularity(granularity)
        query = await self.prepare_query(link_id, user_id, start, end, gran)

        async def compute() -> TimelineView:
            rows = await self.events.aggregate(
                QueryPlan(
                    filter=query.to_filter(),
                    group_by=(
                        GroupKey(
                            name="period",
                            path="timestamp",
                            date_format=get_bucket_config(gran).date_format,
                        ),
                    ),
                    sort=SortOrder.KEY_ASC,
                )
            )
            return TimelineView(
                link_id=link_id,
                granularity=gran.value,
                points=[TimelinePoint(**row) for row in rows],
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("timeline", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(
            key, TimelineView, CacheTTL.timeline(gran), compute
        )

    async def list_events(
        self,
        link_id: str,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 100,
    ) -> EventsPage:
        """Raw events newest first. Not cached."""
        if page < 1:
            raise ValidationError("Page must be at least 1", field="page")
        if not 1 <= limit <= MAX_EVENTS_PAGE_SIZE:
            raise ValidationError(
                f"Limit must be between 1 and {MAX_EVENTS_PAGE_SIZE}", field="limit"
            )
        query = await self.prepare_query(link_id, user_id, start, end)

        flt = query.to_filter()
        total = await self.events.count(flt)
        events = await self.events.find(flt, skip=(page - 1) * limit, limit=limit)
        return EventsPage(
            events=[EventRecord.from_event(e) for e in events],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        )

    async def performance(self, link_id: str, user_id: str) -> PerformanceView:
        """All-time engagement metrics for one link."""
        query = await self.prepare_query(link_id, user_id, None, None)

        async def compute() -> PerformanceView:
            flt = query.to_filter()
            total = await self.events.count(flt)
            unique = await self.visitors.count(link_id)

            hourly = await self.events.aggregate(
                QueryPlan(
                    filter=flt,
                    group_by=(GroupKey(name="hour", path="timestamp", date_format="%H"),),
                )
            )
            weekly = await self.events.aggregate(
                QueryPlan(
                    filter=flt,
                    group_by=(GroupKey(name="day", path="timestamp", date_format="%u"),),
                    sort=SortOrder.KEY_ASC,
                )
            )

            return PerformanceView(
                total_clicks=total,
                unique_visitors=unique,
                engagement_rate=round(unique / total * 100, 2) if total > 0 else 0.0,
                peak_hour=int(hourly[0]["hour"]) if hourly else None,
                hourly_distribution=[
                    HourItem(
                        hour=int(row["hour"]),
                        clicks=row["clicks"],
                        percentage=percentage(row["clicks"], total),
                    )
                    for row in hourly
                ],
                day_of_week_distribution=[
                    DayOfWeekItem(
                        day=_WEEKDAYS[row["day"]],
                        clicks=row["clicks"],
                        percentage=percentage(row["clicks"], total),
                    )
                    for row in weekly
                ],
                geographic_diversity=GeographicDiversity(
                    unique_countries=len(await self.events.distinct("location.country", flt)),
                    unique_regions=len(await self.events.distinct("location.region", flt)),
                    unique_cities=len(await self.events.distinct("location.city", flt)),
                ),
            )

        key = build_cache_key("performance", query.scope_id)
        return await self.cache.get_or_compute(
            key, PerformanceView, CacheTTL.PERFORMANCE, compute
        )

    # ── multi-link views ─────────────────────────────────────────────────────

    async def user_overview(self, user_id: str) -> UserOverview:
        async def compute() -> UserOverview:
            link_ids = await self.links.list_link_ids(user_id)
            if not link_ids:
                return UserOverview(total_clicks=0, unique_visitors=0, total_links=0)

            flt = EventFilter(link_ids=tuple(link_ids))
            total = await self.events.count(flt)
            top_links = await self.events.aggregate(
                QueryPlan(
                    filter=flt,
                    group_by=(GroupKey(name="link_id", path="link_id"),),
                    limit=dims.TOP_DEFAULT,
                )
            )
            return UserOverview(
                total_clicks=total,
                unique_visitors=await self.visitors.count_many(link_ids),
                total_links=len(link_ids),
                top_links=[LinkClicks(**row) for row in top_links],
                countries=await breakdown(self.events, flt, dims.COUNTRY, total),
                device_types=await breakdown(self.events, flt, dims.DEVICE_TYPE, total),
                browsers=await breakdown(self.events, flt, dims.BROWSER, total),
            )

        key = build_cache_key("user", user_id)
        return await self.cache.get_or_compute(
            key, UserOverview, CacheTTL.USER_AGGREGATE, compute
        )

    async def _authorize_all(self, link_ids: list[str], user_id: str) -> None:
        # Every link must exist before ownership is judged
        owners = {link_id: await self.links.lookup_owner(link_id) for link_id in link_ids}
        foreign = [lid for lid, owner in owners.items() if owner is None or owner != user_id]
        if foreign:
            log.warning("analytics_access_denied", link_ids=foreign, user_id=user_id)
            raise ForbiddenError("You do not have permission to access one or more links")

    async def compare(
        self,
        link_ids: list[str],
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> CompareView:
        ids = validate_link_ids(link_ids, MAX_COMPARE_LINKS)
        validate_window(start, end)
        await self._authorize_all(ids, user_id)
        query = AggregationQuery(link_ids=ids, start=start, end=end)

        async def compute() -> CompareView:
            comparison = []
            for link_id in sorted(ids):
                flt = EventFilter(link_ids=(link_id,), start=start, end=end)
                top = await self.events.aggregate(
                    dims.COUNTRY.plan(flt, limit=COMPARE_TOP_COUNTRIES)
                )
                comparison.append(
                    LinkComparison(
                        link_id=link_id,
                        clicks=await self.events.count(flt),
                        unique_visitors=await self.visitors.count(link_id),
                        unique_countries=len(
                            await self.events.distinct("location.country", flt)
                        ),
                        device_types=sorted(await self.events.distinct("device.type", flt)),
                        top_countries=[
                            CountryClicks(country=row["country"], clicks=row["clicks"])
                            for row in top
                        ],
                    )
                )
            return CompareView(
                comparison=comparison,
                date_range=DateRange(start_date=start, end_date=end),
            )

        key = build_cache_key("compare", query.scope_id, query.fingerprint_params())
        return await self.cache.get_or_compute(key, CompareView, CacheTTL.COMPARE, compute)

    async def custom_report(self, user_id: str, settings: ReportSettings) -> CustomReport:
        ids = validate_link_ids(settings.link_ids, MAX_REPORT_LINKS)
        validate_window(settings.start_date, settings.end_date)
        await self._authorize_all(ids, user_id)
        settings = settings.model_copy(update={"link_ids": ids})

        async def compute() -> CustomReport:
            report = CustomReport(config=settings)
            for link_id in ids:
                flt = EventFilter(
                    link_ids=(link_id,), start=settings.start_date, end=settings.end_date
                )
                total = await self.events.count(flt)
                item = ReportLink(link_id=link_id, total_clicks=total)
                if settings.include_geo:
                    item.top_countries = await breakdown(self.events, flt, dims.COUNTRY, total)
                if settings.include_devices:
                    item.device_breakdown = await breakdown(
                        self.events, flt, dims.DEVICE_TYPE, total
                    )
                if settings.include_referrers:
                    item.top_referrers = await breakdown(
                        self.events, flt, dims.REFERRER, total
                    )
                report.links.append(item)

            if should_sample("stats_query"):
                log.info("custom_report_generated", user_id=user_id, links=len(ids))
            return report

        key = build_cache_key("custom-report", user_id, settings.model_dump(mode="json"))
        return await self.cache.get_or_compute(
            key, CustomReport, CacheTTL.CUSTOM_REPORT, compute
        )
