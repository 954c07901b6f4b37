"""
Period-over-period growth ranking across a user's links.

For a period P ending at ``now``:

    current  = clicks in [now - P, now)
    previous = clicks in [now - 2P, now - P)

Only links with current > 0 are ranked. The full ranking (up to
MAX_TRENDING entries) is cached per (user, period); callers get a slice.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from errors import ValidationError
from infrastructure.cache.analytics_cache import AnalyticsCache
from infrastructure.cache.keys import CacheTTL, build_cache_key
from repositories.protocol import EventStore, LinkRepository
from schemas.models.analytics import TrendingView, TrendRecord
from schemas.models.query import EventFilter
from shared.batching import run_bounded
from shared.datetime_utils import ensure_utc, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

PERIODS: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

DEFAULT_LIMIT = 10
MAX_TRENDING = 50


def parse_period(period: str) -> timedelta:
    try:
        return PERIODS[period]
    except KeyError:
        raise ValidationError(
            f"Invalid period: {period!r}",
            field="period",
            details={"allowed": list(PERIODS)},
        )


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(MAX_TRENDING, limit))


def growth_percentage(current: int, previous: int) -> float:
    """100 for a link with no previous clicks, 0 when both windows are empty."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def rank(records: list[TrendRecord]) -> list[TrendRecord]:
    """Growth percentage desc, then growth rate desc, then link id asc."""
    return sorted(
        records, key=lambda r: (-r.growth_percentage, -r.growth_rate, r.link_id)
    )


class TrendService:
    def __init__(
        self,
        events: EventStore,
        links: LinkRepository,
        cache: AnalyticsCache,
        concurrency: int = 8,
    ) -> None:
        self.events = events
        self.links = links
        self.cache = cache
        self.concurrency = concurrency

    async def compute_trend(
        self, link_id: str, period: str, now: Optional[datetime] = None
    ) -> TrendRecord:
        length = parse_period(period)
        now = ensure_utc(now) if now is not None else utcnow()

        current = await self.events.count(
            EventFilter(link_ids=(link_id,), start=now - length, end=now)
        )
        previous = await self.events.count(
            EventFilter(link_ids=(link_id,), start=now - 2 * length, end=now - length)
        )
        return TrendRecord(
            link_id=link_id,
            current_clicks=current,
            previous_clicks=previous,
            growth_rate=current - previous,
            growth_percentage=growth_percentage(current, previous),
        )

    async def _rank_for_user(
        self, user_id: str, period: str, now: Optional[datetime]
    ) -> TrendingView:
        link_ids = await self.links.list_link_ids(user_id)
        result = await run_bounded(
            link_ids,
            lambda link_id: self.compute_trend(link_id, period, now),
            concurrency=self.concurrency,
        )
        if result.failed:
            log.warning(
                "trend_links_skipped",
                user_id=user_id,
                period=period,
                failed=result.failed,
                failed_ids=result.failed_ids,
            )

        eligible = [r for r in result.results.values() if r.current_clicks > 0]
        return TrendingView(period=period, trending=rank(eligible)[:MAX_TRENDING])

    def _key(self, user_id: str, period: str) -> str:
        return build_cache_key("trending", user_id, {"period": period})

    async def get_for_user(
        self,
        user_id: str,
        period: str = "week",
        limit: Optional[int] = DEFAULT_LIMIT,
        now: Optional[datetime] = None,
    ) -> TrendingView:
        parse_period(period)
        limit = clamp_limit(limit)

        view = await self.cache.get_or_compute(
            self._key(user_id, period),
            TrendingView,
            CacheTTL.TRENDING,
            lambda: self._rank_for_user(user_id, period, now),
        )
        return TrendingView(period=view.period, trending=view.trending[:limit])

    async def refresh_for_user(
        self, user_id: str, period: str, now: Optional[datetime] = None
    ) -> TrendingView:
        """Recompute and overwrite the cached ranking (hourly job)."""
        parse_period(period)
        view = await self._rank_for_user(user_id, period, now)
        await self.cache.set_model(self._key(user_id, period), view, CacheTTL.TRENDING)
        return view
