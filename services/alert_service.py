"""
Traffic anomaly alerts.

Each of a user's links is evaluated on the trailing 24 hours against the
24 hours before that. Alerts are recomputed on every cache miss and never
persisted, so there is nothing to acknowledge.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from infrastructure.cache.analytics_cache import AnalyticsCache
from infrastructure.cache.keys import CacheTTL, build_cache_key
from repositories.protocol import EventStore, LinkRepository
from schemas.models.analytics import Alert, AlertsView
from schemas.models.query import EventFilter
from shared.batching import run_bounded
from shared.datetime_utils import ensure_utc, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

WINDOW = timedelta(hours=24)

SPIKE_RATIO = 3.0
DROP_RATIO = 0.3
DROP_MIN_PREVIOUS = 10
NEW_REFERRERS_MIN_CLICKS = 10
MAX_REFERRER_EXAMPLES = 5


def _plural(n: int, one: str, many: str) -> str:
    return one if n == 1 else many


class AlertService:
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

    async def evaluate_link(
        self, link_id: str, now: Optional[datetime] = None
    ) -> list[Alert]:
        now = ensure_utc(now) if now is not None else utcnow()
        boundary = now - WINDOW

        current_flt = EventFilter(link_ids=(link_id,), start=boundary, end=now)
        previous_flt = EventFilter(link_ids=(link_id,), start=now - 2 * WINDOW, end=boundary)
        history_flt = EventFilter(link_ids=(link_id,), end=boundary)

        current = await self.events.count(current_flt)
        previous = await self.events.count(previous_flt)
        alerts: list[Alert] = []

        if previous > 0 and current / previous > SPIKE_RATIO:
            alerts.append(
                Alert(
                    link_id=link_id,
                    type="traffic_spike",
                    severity="warning",
                    message=(
                        f"Traffic increased by {round((current - previous) / previous * 100)}% "
                        "in the last 24 hours"
                    ),
                    data={
                        "current_clicks": current,
                        "previous_clicks": previous,
                        "increase": current - previous,
                    },
                )
            )

        # Evaluated even when the link had no clicks at all today
        if previous > DROP_MIN_PREVIOUS and current / previous < DROP_RATIO:
            alerts.append(
                Alert(
                    link_id=link_id,
                    type="traffic_drop",
                    severity="critical",
                    message=(
                        f"Traffic decreased by {round((previous - current) / previous * 100)}% "
                        "in the last 24 hours"
                    ),
                    data={
                        "current_clicks": current,
                        "previous_clicks": previous,
                        "decrease": previous - current,
                    },
                )
            )

        if current == 0:
            return alerts

        seen_countries = set(await self.events.distinct("location.country", history_flt))
        new_countries = sorted(
            set(await self.events.distinct("location.country", current_flt)) - seen_countries
        )
        if new_countries:
            alerts.append(
                Alert(
                    link_id=link_id,
                    type="new_countries",
                    severity="info",
                    message=(
                        f"Link accessed from {len(new_countries)} new "
                        f"{_plural(len(new_countries), 'country', 'countries')}"
                    ),
                    data={"new_countries": new_countries},
                )
            )

        if current > NEW_REFERRERS_MIN_CLICKS:
            known = set(await self.events.distinct("referrer.domain", history_flt))
            new_referrers = sorted(
                set(await self.events.distinct("referrer.domain", current_flt)) - known
            )
            if new_referrers:
                alerts.append(
                    Alert(
                        link_id=link_id,
                        type="new_referrers",
                        severity="info",
                        message=(
                            f"Link accessed from {len(new_referrers)} new "
                            f"{_plural(len(new_referrers), 'referrer', 'referrers')}"
                        ),
                        data={"new_referrers": new_referrers[:MAX_REFERRER_EXAMPLES]},
                    )
                )

        return alerts

    async def _evaluate_user(self, user_id: str, now: Optional[datetime]) -> AlertsView:
        link_ids = await self.links.list_link_ids(user_id)
        result = await run_bounded(
            link_ids,
            lambda link_id: self.evaluate_link(link_id, now),
            concurrency=self.concurrency,
        )
        if result.failed:
            log.warning(
                "alert_links_skipped",
                user_id=user_id,
                failed=result.failed,
                failed_ids=result.failed_ids,
            )

        alerts: list[Alert] = []
        for link_id in sorted(result.results):
            alerts.extend(result.results[link_id])
        return AlertsView(alerts=alerts)

    async def get_alerts(self, user_id: str, now: Optional[datetime] = None) -> AlertsView:
        return await self.cache.get_or_compute(
            build_cache_key("alerts", user_id),
            AlertsView,
            CacheTTL.ALERTS,
            lambda: self._evaluate_user(user_id, now),
        )
