"""
Store-agnostic query types.

An AggregationQuery is what a caller asks for (which links, which window,
which grouping) and is the source of cache fingerprints. A QueryPlan is
the grouping program an EventStore runs: filter, group keys, carried
``first`` values, sort order and limit. repositories.pipeline compiles a plan
into a MongoDB aggregation pipeline; repositories.memory evaluates it
directly over Python objects.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.crypto import fingerprint
from shared.datetime_utils import ensure_utc


class EventFilter(BaseModel):
    """Selects click events. All set conditions must hold."""

    model_config = ConfigDict(frozen=True)

    link_ids: tuple[str, ...] = ()
    owner_id: Optional[str] = None
    start: Optional[datetime] = None  # inclusive
    end: Optional[datetime] = None  # exclusive
    present: tuple[str, ...] = ()  # dotted paths that must be non-null

    def with_present(self, *paths: str) -> "EventFilter":
        return self.model_copy(update={"present": self.present + tuple(paths)})

    def matches_window(self, timestamp: datetime) -> bool:
        timestamp = ensure_utc(timestamp)
        if self.start is not None and timestamp < ensure_utc(self.start):
            return False
        if self.end is not None and timestamp >= ensure_utc(self.end):
            return False
        return True


class GroupKey(BaseModel):
    """One component of a group key.

    With ``date_format`` set, ``path`` must point at a datetime and the key
    value is that datetime rendered with the format (``%H`` for hour of day,
    ``%u`` for ISO day of week, the timeline formats for buckets).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    date_format: Optional[str] = None


class SortOrder(str, Enum):
    CLICKS_DESC = "clicks_desc"  # ties broken by key ascending
    KEY_ASC = "key_asc"


class QueryPlan(BaseModel):
    """Group-and-count program over click events.

    Each result row is a dict holding every group key name, ``clicks`` and
    every name in ``first`` (the value of that path on the earliest event
    of the group).
    """

    model_config = ConfigDict(frozen=True)

    filter: EventFilter
    group_by: tuple[GroupKey, ...]
    first: dict[str, str] = Field(default_factory=dict)
    sort: SortOrder = SortOrder.CLICKS_DESC
    limit: Optional[int] = None

    @property
    def key_names(self) -> list[str]:
        return [key.name for key in self.group_by]


class AggregationQuery(BaseModel):
    """What a caller asked for; derives the cache fingerprint."""

    link_ids: list[str]
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    group_by: Optional[str] = None

    def to_filter(self) -> EventFilter:
        return EventFilter(link_ids=tuple(self.link_ids), start=self.start, end=self.end)

    @property
    def scope_id(self) -> str:
        """Single link id, or the sorted ids joined by ``-``."""
        if len(self.link_ids) == 1:
            return self.link_ids[0]
        return "-".join(sorted(self.link_ids))

    def fingerprint_params(self) -> dict:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "group_by": self.group_by,
        }

    def fingerprint(self) -> str:
        return fingerprint(self.fingerprint_params())
