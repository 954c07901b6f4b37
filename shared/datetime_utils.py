"""
Date/time parsing and window arithmetic — framework-agnostic.

All datetimes leaving this module are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a date/time value into a timezone-aware UTC datetime.

    Accepts:
    - ``None`` → ``None``
    - ``datetime`` → normalised to UTC
    - ``int`` / ``float`` → treated as Unix epoch seconds
    - ``str`` ending in ``"Z"`` → converted to ``+00:00`` before parsing
    - Any ISO 8601 string (``datetime.fromisoformat``)

    Naive datetimes (no ``tzinfo``) are assumed to be UTC.

    Returns:
        A timezone-aware ``datetime`` in UTC, or ``None`` if *value* is ``None``
        or cannot be parsed.
    """
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        else:
            raw = str(value)
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            dt = datetime.fromisoformat(raw)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def previous_day_window(now: datetime) -> tuple[datetime, datetime]:
    """``[yesterday 00:00, today 00:00)`` in UTC."""
    end = start_of_day(now)
    return end - timedelta(days=1), end


def previous_week_window(now: datetime) -> tuple[datetime, datetime]:
    """The last complete ISO week (Monday 00:00 to Monday 00:00) before *now*."""
    today = start_of_day(now)
    this_monday = today - timedelta(days=today.weekday())
    return this_monday - timedelta(days=7), this_monday


def previous_month_window(now: datetime) -> tuple[datetime, datetime]:
    """The last complete calendar month before *now*."""
    first_of_this_month = start_of_day(now).replace(day=1)
    last_of_prev = first_of_this_month - timedelta(days=1)
    return last_of_prev.replace(day=1), first_of_this_month


def iso_week_key(value: date) -> str:
    """``YYYY-Www`` using ISO year and ISO week number."""
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"
