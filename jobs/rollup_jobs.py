"""
Batch rollup, cleanup and trending jobs.

Every rollup run follows the same shape:

1. enumerate the links with events in the target window (the only step
   whose failure aborts the run);
2. build and upsert one RollupRecord per link on a bounded worker pool,
   with a per-link timeout. A failing link is logged with its id and
   counted; the others still persist.

Cleanup never deletes a day of events before every active link of that day
has a persisted daily rollup.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from config import AnalyticsSettings
from repositories.protocol import EventStore, LinkRepository, RollupRepository
from schemas.models.query import EventFilter, GroupKey, QueryPlan, SortOrder
from schemas.models.rollup import BreakdownEntry, CountryCount, RollupPeriod, RollupRecord
from services import breakdown as dims
from services.trend_service import PERIODS, TrendService
from shared.batching import BatchResult, run_bounded
from shared.datetime_utils import (
    iso_week_key,
    previous_day_window,
    previous_month_window,
    previous_week_window,
    start_of_day,
    utcnow,
)
from shared.logging import get_logger

log = get_logger(__name__)

DAILY_TOP_COUNTRIES = 5
MONTHLY_TOP_COUNTRIES = 10


def period_key(period: RollupPeriod, start: datetime) -> str:
    period = RollupPeriod(period)
    if period == RollupPeriod.DAY:
        return start.strftime("%Y-%m-%d")
    if period == RollupPeriod.WEEK:
        return iso_week_key(start.date())
    return start.strftime("%Y-%m")


class RollupJobs:
    def __init__(
        self,
        events: EventStore,
        rollups: RollupRepository,
        links: LinkRepository,
        trends: TrendService,
        settings: Optional[AnalyticsSettings] = None,
    ) -> None:
        self.events = events
        self.rollups = rollups
        self.links = links
        self.trends = trends
        self.settings = settings or AnalyticsSettings()

    # ── building blocks ──────────────────────────────────────────────────────

    async def _bucket_breakdown(self, flt: EventFilter, date_format: str) -> list[BreakdownEntry]:
        rows = await self.events.aggregate(
            QueryPlan(
                filter=flt,
                group_by=(GroupKey(name="key", path="timestamp", date_format=date_format),),
                sort=SortOrder.KEY_ASC,
            )
        )
        return [BreakdownEntry(key=row["key"], clicks=row["clicks"]) for row in rows]

    async def _top_countries(self, flt: EventFilter, limit: int) -> list[CountryCount]:
        rows = await self.events.aggregate(dims.COUNTRY.plan(flt, limit=limit))
        return [CountryCount(country=row["country"], clicks=row["clicks"]) for row in rows]

    async def build_rollup(
        self, link_id: str, period: RollupPeriod, start: datetime, end: datetime
    ) -> RollupRecord:
        """Compute the rollup for one link and window. Pure function of the events."""
        period = RollupPeriod(period)
        flt = EventFilter(link_ids=(link_id,), start=start, end=end)

        record = RollupRecord(
            period=period,
            link_id=link_id,
            period_key=period_key(period, start),
            start=start,
            end=end,
            clicks=await self.events.count(flt),
            # Windowed distinct count; the visitor tracker only knows all-time totals
            unique_visitors=len(await self.events.distinct("visitor_hash", flt)),
        )

        if period == RollupPeriod.DAY:
            record.top_countries = await self._top_countries(flt, DAILY_TOP_COUNTRIES)
        elif period == RollupPeriod.WEEK:
            record.daily_breakdown = await self._bucket_breakdown(flt, "%Y-%m-%d")
        else:
            record.weekly_breakdown = await self._bucket_breakdown(flt, "%G-W%V")
            record.top_countries = await self._top_countries(flt, MONTHLY_TOP_COUNTRIES)

        return record

    async def rollup_links(
        self,
        link_ids: list[str],
        period: RollupPeriod,
        start: datetime,
        end: datetime,
    ) -> BatchResult:
        async def _one(link_id: str) -> str:
            record = await self.build_rollup(link_id, period, start, end)
            await self.rollups.upsert(record)
            return record.id

        return await run_bounded(
            link_ids,
            _one,
            concurrency=self.settings.batch_concurrency,
            timeout=self.settings.batch_item_timeout_seconds,
        )

    async def run_rollup(
        self, period: RollupPeriod, start: datetime, end: datetime
    ) -> BatchResult:
        key = period_key(period, start)
        link_ids = await self.events.active_link_ids(start, end)
        log.info(
            "rollup_run_started",
            period=RollupPeriod(period).value,
            period_key=key,
            active_links=len(link_ids),
        )
        result = await self.rollup_links(link_ids, period, start, end)
        log.info(
            "rollup_run_completed",
            period=RollupPeriod(period).value,
            period_key=key,
            processed=result.processed,
            failed=result.failed,
            total=result.total,
        )
        return result

    # ── scheduled jobs ───────────────────────────────────────────────────────

    async def daily_rollup(self, now: Optional[datetime] = None) -> BatchResult:
        start, end = previous_day_window(now or utcnow())
        return await self.run_rollup(RollupPeriod.DAY, start, end)

    async def weekly_rollup(self, now: Optional[datetime] = None) -> BatchResult:
        start, end = previous_week_window(now or utcnow())
        return await self.run_rollup(RollupPeriod.WEEK, start, end)

    async def monthly_rollup(self, now: Optional[datetime] = None) -> BatchResult:
        start, end = previous_month_window(now or utcnow())
        return await self.run_rollup(RollupPeriod.MONTH, start, end)

    async def cleanup(self, now: Optional[datetime] = None) -> BatchResult:
        """Purge events past retention, backfilling missing daily rollups first.

        ``results`` carries ``deleted`` and ``purged_before``.
        """
        cutoff = start_of_day(now or utcnow()) - timedelta(days=self.settings.retention_days)
        result = BatchResult()

        oldest = await self.events.oldest_timestamp()
        if oldest is None or oldest >= cutoff:
            log.info("cleanup_nothing_to_purge", cutoff=cutoff.isoformat())
            result.results = {"deleted": 0, "purged_before": None}
            return result

        purge_before = cutoff
        day = start_of_day(oldest)
        while day < cutoff:
            day_end = day + timedelta(days=1)
            key = period_key(RollupPeriod.DAY, day)

            active = await self.events.active_link_ids(day, day_end)
            existing = await self.rollups.existing_link_ids(RollupPeriod.DAY, key)
            missing = [link_id for link_id in active if link_id not in existing]

            if missing:
                batch = await self.rollup_links(missing, RollupPeriod.DAY, day, day_end)
                result.total += batch.total
                result.processed += batch.processed
                result.failed += batch.failed
                result.failed_ids.extend(batch.failed_ids)
                if batch.failed:
                    purge_before = day
                    log.warning(
                        "cleanup_purge_halted",
                        day=key,
                        failed=batch.failed,
                        failed_ids=batch.failed_ids,
                    )
                    break

            day = day_end

        deleted = await self.events.delete_before(purge_before)
        log.info(
            "cleanup_completed",
            purged_before=purge_before.isoformat(),
            deleted=deleted,
            backfilled=result.processed,
        )
        result.results = {"deleted": deleted, "purged_before": purge_before.isoformat()}
        return result

    async def trending_refresh(self, now: Optional[datetime] = None) -> BatchResult:
        """Recompute cached trending rankings for every owner and period."""
        now = now or utcnow()
        owner_ids = await self.links.list_owner_ids()

        async def _one(user_id: str) -> int:
            for period in PERIODS:
                await self.trends.refresh_for_user(user_id, period, now)
            return len(PERIODS)

        result = await run_bounded(
            owner_ids,
            _one,
            concurrency=self.settings.batch_concurrency,
            timeout=self.settings.batch_item_timeout_seconds,
            label="user_id",
        )
        log.info(
            "trending_refresh_completed",
            processed=result.processed,
            failed=result.failed,
            total=result.total,
        )
        return result
