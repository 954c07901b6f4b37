"""
Request DTOs for the analytics endpoints.

WindowQuery    — optional ISO 8601 start_date / end_date (all window endpoints)
TimelineQuery  — GET /links/{id}/timeline
EventsQuery    — GET /links/{id}/events
ExportQuery    — GET /links/{id}/export
CompareQuery   — GET /compare
TrendingQuery  — GET /trending
ReportRequest  — POST /reports (JSON body)

Dates stay strings on the wire and are parsed by ``window()``, which raises
the application's ValidationError (400) rather than a framework 422.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from errors import ValidationError
from schemas.models.analytics import ReportSettings
from shared.datetime_utils import parse_datetime


def _parse_comma_separated(value: Any) -> list[str]:
    """Split a comma-separated string or pass-through a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _parse_date(value: Optional[str], field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(f"Invalid date format for {field}", field=field)
    return parsed


class WindowQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def window(self) -> tuple[Optional[datetime], Optional[datetime]]:
        return (
            _parse_date(self.start_date, "start_date"),
            _parse_date(self.end_date, "end_date"),
        )


class TimelineQuery(WindowQuery):
    granularity: str = Field(default="day")


class EventsQuery(WindowQuery):
    page: int = Field(default=1)
    limit: int = Field(default=100)


class ExportQuery(WindowQuery):
    format: str = Field(default="csv")


class CompareQuery(WindowQuery):
    # Comma-separated link ids, at most 10
    link_ids: str = ""

    @property
    def parsed_link_ids(self) -> list[str]:
        return _parse_comma_separated(self.link_ids)


class TrendingQuery(BaseModel):
    period: str = Field(default="week")
    limit: int = Field(default=10)


class ReportRequest(BaseModel):
    """JSON body for POST /reports."""

    model_config = ConfigDict(populate_by_name=True)

    link_ids: list[str] = Field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    group_by: Optional[str] = None
    include_geo: bool = False
    include_devices: bool = False
    include_referrers: bool = False

    def to_settings(self) -> ReportSettings:
        return ReportSettings(
            link_ids=_parse_comma_separated(self.link_ids),
            start_date=_parse_date(self.start_date, "start_date"),
            end_date=_parse_date(self.end_date, "end_date"),
            group_by=self.group_by,
            include_geo=self.include_geo,
            include_devices=self.include_devices,
            include_referrers=self.include_referrers,
        )
