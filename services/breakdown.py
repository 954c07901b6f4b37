"""
Breakdown dimensions and percentage math shared by every analytics view.

A Dimension describes one "top-N by clicks" table: its group keys, the
fields that must be present, the values carried from the first event of
each group, the row limit and the row model. ``breakdown()`` turns it into
a QueryPlan, runs it on an EventStore and returns typed rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Type

from repositories.protocol import EventStore
from schemas.models.analytics import (
    BrandItem,
    BrowserItem,
    CityItem,
    CountryItem,
    DeviceModelItem,
    DeviceTypeItem,
    OsItem,
    ReferrerItem,
    ReferrerTypeItem,
    RegionItem,
    UtmCampaignItem,
)
from schemas.models.base import ViewModel
from schemas.models.query import EventFilter, GroupKey, QueryPlan, SortOrder

TOP_DEFAULT = 10
TOP_LOCATION = 20


def percentage(clicks: int, total: int) -> float:
    """Share of *total* in percent, rounded to 2 decimals. Never divides by zero."""
    return round(clicks / max(total, 1) * 100, 2)


@dataclass(frozen=True)
class Dimension:
    name: str
    keys: tuple[GroupKey, ...]
    model: Type[ViewModel]
    limit: Optional[int] = TOP_DEFAULT
    present: tuple[str, ...] = ()
    first: dict[str, str] = field(default_factory=dict)

    def plan(self, flt: EventFilter, limit: Optional[int] = None) -> QueryPlan:
        return QueryPlan(
            filter=flt.with_present(*self.present),
            group_by=self.keys,
            first=self.first,
            sort=SortOrder.CLICKS_DESC,
            limit=limit if limit is not None else self.limit,
        )


def _key(name: str, path: str) -> GroupKey:
    return GroupKey(name=name, path=path)


COUNTRY = Dimension(
    name="country",
    keys=(_key("country", "location.country"),),
    model=CountryItem,
    present=("location.country",),
    first={"country_code": "location.country_code"},
)

# Same grouping, also carrying the first-seen coordinates for map views
COUNTRY_WITH_COORDINATES = Dimension(
    name="country",
    keys=COUNTRY.keys,
    model=CountryItem,
    present=COUNTRY.present,
    first={
        "country_code": "location.country_code",
        "latitude": "location.latitude",
        "longitude": "location.longitude",
    },
)

REGION = Dimension(
    name="region",
    keys=(_key("country", "location.country"), _key("region", "location.region")),
    model=RegionItem,
    limit=TOP_LOCATION,
    present=("location.region",),
)

CITY = Dimension(
    name="city",
    keys=(
        _key("country", "location.country"),
        _key("region", "location.region"),
        _key("city", "location.city"),
    ),
    model=CityItem,
    limit=TOP_LOCATION,
    present=("location.city",),
)

DEVICE_TYPE = Dimension(
    name="device_type",
    keys=(_key("device_type", "device.type"),),
    model=DeviceTypeItem,
)

BRAND = Dimension(
    name="brand",
    keys=(_key("brand", "device.brand"),),
    model=BrandItem,
    present=("device.brand",),
)

DEVICE_MODEL = Dimension(
    name="model",
    keys=(_key("model", "device.model"),),
    model=DeviceModelItem,
    present=("device.model",),
    first={"brand": "device.brand"},
)

BROWSER = Dimension(
    name="browser",
    keys=(_key("browser", "browser.name"),),
    model=BrowserItem,
    present=("browser.name",),
)

OS = Dimension(
    name="os",
    keys=(_key("os", "os.name"),),
    model=OsItem,
    present=("os.name",),
)

REFERRER = Dimension(
    name="referrer",
    keys=(_key("domain", "referrer.domain"),),
    model=ReferrerItem,
    present=("referrer.domain",),
    first={"type": "referrer.type"},
)

# At most five values (direct, search, social, email, other)
REFERRER_TYPE = Dimension(
    name="referrer_type",
    keys=(_key("type", "referrer.type"),),
    model=ReferrerTypeItem,
    limit=None,
)

UTM_CAMPAIGN = Dimension(
    name="utm_campaign",
    keys=(
        _key("campaign", "utm.campaign"),
        _key("source", "utm.source"),
        _key("medium", "utm.medium"),
    ),
    model=UtmCampaignItem,
    limit=TOP_LOCATION,
    present=("utm.campaign",),
)


async def breakdown(
    store: EventStore,
    flt: EventFilter,
    dimension: Dimension,
    total: int,
    limit: Optional[int] = None,
) -> list:
    """Top rows of *dimension* with percentages of *total*."""
    rows = await store.aggregate(dimension.plan(flt, limit))
    return [
        dimension.model(**row, percentage=percentage(row["clicks"], total))
        for row in rows
    ]
