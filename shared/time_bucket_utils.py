"""
Time bucket definitions for timeline aggregation.

Each granularity maps to a fixed strftime-style format that both the MongoDB
``$dateToString`` stage and Python's ``datetime.strftime`` understand, so the
in-memory and MongoDB event stores produce identical bucket keys.

Weekly buckets use ISO year + ISO week number (``%G-W%V``) so the first days
of January land in the week they belong to.
"""

from datetime import timedelta
from enum import Enum
from typing import Dict


class Granularity(str, Enum):
    """Timeline bucket sizes accepted by the analytics API."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class TimeBucketConfig:
    """Configuration for one timeline granularity."""

    def __init__(
        self,
        granularity: Granularity,
        date_format: str,
        max_window: timedelta,
    ):
        self.granularity = granularity
        self.date_format = date_format
        self.max_window = max_window


_YEAR = timedelta(days=365)

BUCKET_CONFIGS: Dict[Granularity, TimeBucketConfig] = {
    Granularity.HOUR: TimeBucketConfig(
        granularity=Granularity.HOUR,
        date_format="%Y-%m-%d %H:00",
        max_window=timedelta(days=7),
    ),
    Granularity.DAY: TimeBucketConfig(
        granularity=Granularity.DAY,
        date_format="%Y-%m-%d",
        max_window=_YEAR,
    ),
    Granularity.WEEK: TimeBucketConfig(
        granularity=Granularity.WEEK,
        date_format="%G-W%V",
        max_window=2 * _YEAR,
    ),
    Granularity.MONTH: TimeBucketConfig(
        granularity=Granularity.MONTH,
        date_format="%Y-%m",
        max_window=5 * _YEAR,
    ),
    Granularity.YEAR: TimeBucketConfig(
        granularity=Granularity.YEAR,
        date_format="%Y",
        max_window=10 * _YEAR,
    ),
}

# Cap for every non-timeline view (summary, breakdowns, compare, reports)
DEFAULT_MAX_WINDOW = 2 * _YEAR


def get_bucket_config(granularity: Granularity) -> TimeBucketConfig:
    """Get the bucket configuration for a given granularity."""
    return BUCKET_CONFIGS[Granularity(granularity)]
