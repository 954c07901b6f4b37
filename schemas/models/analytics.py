"""
Typed analytics views.

One model per view. These are what AnalyticsCache stores (as JSON via
model_dump_json / model_validate_json) and what the routes return, so a
cache hit and a cold computation always have the same shape.

Breakdown row models share ``clicks`` and ``percentage``; the remaining
fields are named after the QueryPlan group keys that produce them, so
services.breakdown can build rows with ``Model(**row)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from schemas.models.base import ViewModel
from schemas.models.click import ClickEvent, Device, Location, OperatingSystem, Browser, Referrer, Utm


class DateRange(ViewModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class _Share(ViewModel):
    clicks: int
    percentage: float = 0.0


# --- breakdown rows ---------------------------------------------------------


class CountryItem(_Share):
    country: str
    country_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class RegionItem(_Share):
    country: Optional[str] = None
    region: str


class CityItem(_Share):
    country: Optional[str] = None
    region: Optional[str] = None
    city: str


class DeviceTypeItem(_Share):
    device_type: Optional[str] = None


class BrandItem(_Share):
    brand: str


class DeviceModelItem(_Share):
    model: str
    brand: Optional[str] = None


class BrowserItem(_Share):
    browser: str


class OsItem(_Share):
    os: str


class ReferrerItem(_Share):
    domain: str
    type: Optional[str] = None


class ReferrerTypeItem(_Share):
    type: Optional[str] = None


class UtmCampaignItem(_Share):
    campaign: str
    source: Optional[str] = None
    medium: Optional[str] = None


class DateCount(ViewModel):
    date: str
    clicks: int


class TimelinePoint(ViewModel):
    period: str
    clicks: int


class HourItem(_Share):
    hour: int


class DayOfWeekItem(_Share):
    day: str


# --- per-link views ---------------------------------------------------------


class SummaryView(ViewModel):
    total_clicks: int
    unique_visitors: int
    clicks_by_date: list[DateCount] = Field(default_factory=list)
    top_countries: list[CountryItem] = Field(default_factory=list)
    top_devices: list[DeviceTypeItem] = Field(default_factory=list)
    top_browsers: list[BrowserItem] = Field(default_factory=list)
    top_os: list[OsItem] = Field(default_factory=list)
    top_referrers: list[ReferrerItem] = Field(default_factory=list)
    referrer_types: list[ReferrerTypeItem] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class GeographicView(ViewModel):
    total_clicks: int
    countries: list[CountryItem] = Field(default_factory=list)
    regions: list[RegionItem] = Field(default_factory=list)
    cities: list[CityItem] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class DeviceView(ViewModel):
    total_clicks: int
    device_types: list[DeviceTypeItem] = Field(default_factory=list)
    brands: list[BrandItem] = Field(default_factory=list)
    models: list[DeviceModelItem] = Field(default_factory=list)
    operating_systems: list[OsItem] = Field(default_factory=list)
    browsers: list[BrowserItem] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class ReferrerView(ViewModel):
    total_clicks: int
    referrers: list[ReferrerItem] = Field(default_factory=list)
    referrer_types: list[ReferrerTypeItem] = Field(default_factory=list)
    utm_campaigns: list[UtmCampaignItem] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class TimelineView(ViewModel):
    link_id: str
    granularity: str
    points: list[TimelinePoint] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class GeographicDiversity(ViewModel):
    unique_countries: int = 0
    unique_regions: int = 0
    unique_cities: int = 0


class PerformanceView(ViewModel):
    total_clicks: int
    unique_visitors: int
    engagement_rate: float
    peak_hour: Optional[int] = None
    hourly_distribution: list[HourItem] = Field(default_factory=list)
    day_of_week_distribution: list[DayOfWeekItem] = Field(default_factory=list)
    geographic_diversity: GeographicDiversity = Field(default_factory=GeographicDiversity)


class EventRecord(ViewModel):
    """A click event as returned by the events listing (id as a string)."""

    id: Optional[str] = None
    link_id: str
    timestamp: datetime
    visitor_hash: str
    location: Location
    device: Device
    os: OperatingSystem
    browser: Browser
    referrer: Referrer
    utm: Utm

    @classmethod
    def from_event(cls, event: ClickEvent) -> "EventRecord":
        data = event.model_dump(exclude={"id", "owner_id"})
        return cls(id=str(event.id) if event.id is not None else None, **data)


class EventsPage(ViewModel):
    events: list[EventRecord] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    total_pages: int


# --- multi-link views -------------------------------------------------------


class LinkClicks(ViewModel):
    link_id: str
    clicks: int


class UserOverview(ViewModel):
    total_clicks: int
    unique_visitors: int
    total_links: int
    top_links: list[LinkClicks] = Field(default_factory=list)
    countries: list[CountryItem] = Field(default_factory=list)
    device_types: list[DeviceTypeItem] = Field(default_factory=list)
    browsers: list[BrowserItem] = Field(default_factory=list)


class CountryClicks(ViewModel):
    country: str
    clicks: int


class LinkComparison(ViewModel):
    link_id: str
    clicks: int
    unique_visitors: int
    unique_countries: int
    device_types: list[str] = Field(default_factory=list)
    top_countries: list[CountryClicks] = Field(default_factory=list)


class CompareView(ViewModel):
    comparison: list[LinkComparison] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)


class ReportSettings(ViewModel):
    link_ids: list[str]
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    group_by: Optional[str] = None
    include_geo: bool = False
    include_devices: bool = False
    include_referrers: bool = False


class ReportLink(ViewModel):
    link_id: str
    total_clicks: int
    top_countries: Optional[list[CountryItem]] = None
    device_breakdown: Optional[list[DeviceTypeItem]] = None
    top_referrers: Optional[list[ReferrerItem]] = None


class CustomReport(ViewModel):
    config: ReportSettings
    links: list[ReportLink] = Field(default_factory=list)


# --- trends and alerts ------------------------------------------------------


class TrendRecord(ViewModel):
    link_id: str
    current_clicks: int
    previous_clicks: int
    growth_rate: int
    growth_percentage: float


class TrendingView(ViewModel):
    period: str
    trending: list[TrendRecord] = Field(default_factory=list)


class Alert(ViewModel):
    link_id: str
    type: str
    severity: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class AlertsView(ViewModel):
    alerts: list[Alert] = Field(default_factory=list)
