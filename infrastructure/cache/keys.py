"""
Cache key construction and TTL classes for analytics views.

Key layout: ``<view>:<scope_id>:<filter_hash>``

- view      summary, geographic, device, referrer, timeline, user, compare,
            trending, performance, custom-report, alerts
- scope_id  a link id, a user id, or sorted link ids joined by ``-``
- filter_hash  first 8 hex chars of md5 over the canonical JSON of the
            window bounds and grouping (see AggregationQuery.fingerprint)
"""

from typing import Any, Optional

from shared.crypto import fingerprint
from shared.time_bucket_utils import Granularity


class CacheTTL:
    """TTL classes in seconds."""

    SUMMARY = 600
    GEOGRAPHIC = 900
    DEVICE = 900
    REFERRER = 900
    USER_AGGREGATE = 600
    COMPARE = 900
    TRENDING = 3600
    PERFORMANCE = 1800
    CUSTOM_REPORT = 900
    ALERTS = 300

    TIMELINE = {
        Granularity.HOUR: 60,
        Granularity.DAY: 300,
        Granularity.WEEK: 1800,
        Granularity.MONTH: 1800,
        Granularity.YEAR: 3600,
    }

    @classmethod
    def timeline(cls, granularity: Granularity) -> int:
        return cls.TIMELINE[Granularity(granularity)]


def build_cache_key(
    view: str, scope_id: str, filters: Optional[dict[str, Any]] = None
) -> str:
    """``<view>:<scope_id>:<filter_hash>``; the hash covers *filters* (or ``{}``)."""
    return f"{view}:{scope_id}:{fingerprint(filters or {})}"
