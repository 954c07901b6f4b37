"""
Click event document model.

Maps to the `click_events` MongoDB collection (one document per redirect).
Events are written by the redirect service and are immutable afterwards;
this package only reads them and, after their rollups exist, purges them.

`visitor_hash` is the salted one-way hash of the client IP (see
shared.crypto.hash_visitor). The raw IP never reaches this collection.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.models.base import MongoBaseModel
from shared.datetime_utils import ensure_utc

DeviceType = Literal["mobile", "tablet", "desktop"]
ReferrerType = Literal["direct", "search", "social", "email", "other"]


class _Part(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Location(_Part):
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Device(_Part):
    type: DeviceType = "desktop"
    brand: Optional[str] = None
    model: Optional[str] = None


class OperatingSystem(_Part):
    name: Optional[str] = None
    version: Optional[str] = None


class Browser(_Part):
    name: Optional[str] = None
    version: Optional[str] = None


class Referrer(_Part):
    url: Optional[str] = None
    domain: Optional[str] = None
    type: ReferrerType = "direct"


class Utm(_Part):
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    term: Optional[str] = None
    content: Optional[str] = None


class ClickEvent(MongoBaseModel):
    """Document model for the `click_events` collection."""

    link_id: str
    owner_id: Optional[str] = None
    timestamp: datetime
    visitor_hash: str

    location: Location = Field(default_factory=Location)
    device: Device = Field(default_factory=Device)
    os: OperatingSystem = Field(default_factory=OperatingSystem)
    browser: Browser = Field(default_factory=Browser)
    referrer: Referrer = Field(default_factory=Referrer)
    utm: Utm = Field(default_factory=Utm)

    @field_validator("timestamp", mode="after")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        # pymongo returns naive UTC datetimes unless tz_aware=True
        return ensure_utc(v)

    def field_value(self, path: str):
        """Resolve a dotted path such as ``location.country``."""
        value = self
        for part in path.split("."):
            if value is None:
                return None
            value = getattr(value, part)
        return value
