"""
Input validators for analytics queries.

These raise ``errors.ValidationError`` directly (rather than returning a bool
like the URL validators they replace) because every caller, HTTP or batch,
must reject the same inputs the same way.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional

from errors import ValidationError
from shared.datetime_utils import ensure_utc
from shared.time_bucket_utils import DEFAULT_MAX_WINDOW, Granularity, get_bucket_config

MAX_COMPARE_LINKS = 10
MAX_REPORT_LINKS = 20

_LINK_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_window(
    start: Optional[datetime],
    end: Optional[datetime],
    granularity: Optional[Granularity] = None,
) -> None:
    """Reject inverted windows and windows longer than the granularity cap.

    Open-ended windows (either bound missing) are always accepted.
    """
    if start is None or end is None:
        return

    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        raise ValidationError("Start date must be before end date", field="end_date")

    if granularity is None:
        max_window = DEFAULT_MAX_WINDOW
        label = "analytics"
    else:
        max_window = get_bucket_config(granularity).max_window
        label = f"'{Granularity(granularity).value}'"

    if end - start > max_window:
        raise ValidationError(
            f"Date range for {label} queries cannot exceed {max_window.days} days",
            field="start_date",
            details={"max_days": max_window.days},
        )


def validate_link_id(link_id: str) -> str:
    if not isinstance(link_id, str) or not _LINK_ID_RE.match(link_id):
        raise ValidationError(f"Invalid link ID format: {link_id!r}", field="link_id")
    return link_id


def validate_link_ids(
    link_ids: Iterable[str], max_count: int, field: str = "link_ids"
) -> list[str]:
    """Validate and de-duplicate a list of link ids, preserving order."""
    seen: dict[str, None] = {}
    for link_id in link_ids:
        seen[validate_link_id(link_id.strip())] = None
    ids = list(seen)

    if not ids:
        raise ValidationError("At least one link ID is required", field=field)
    if len(ids) > max_count:
        raise ValidationError(
            f"Cannot request more than {max_count} links at once",
            field=field,
            details={"max": max_count, "received": len(ids)},
        )
    return ids
