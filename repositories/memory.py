"""
In-memory stores for tests and local runs without MongoDB.

InMemoryEventStore evaluates a QueryPlan directly and follows the same
conventions as the MongoDB pipeline: ``$first`` is taken from the earliest
event of a group, null-valued keys sort before strings, and ties on clicks
are broken by key ascending.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

from errors import NotFoundError
from schemas.models.click import ClickEvent
from schemas.models.query import EventFilter, GroupKey, QueryPlan, SortOrder
from schemas.models.rollup import RollupPeriod, RollupRecord
from shared.datetime_utils import ensure_utc


def _sortable(value: Any) -> tuple:
    return (value is not None, "" if value is None else value)


def _key_value(event: ClickEvent, key: GroupKey) -> Any:
    value = event.field_value(key.path)
    if key.date_format and value is not None:
        return ensure_utc(value).strftime(key.date_format)
    return value


def _matches(event: ClickEvent, flt: EventFilter) -> bool:
    if flt.link_ids and event.link_id not in flt.link_ids:
        return False
    if flt.owner_id is not None and event.owner_id != flt.owner_id:
        return False
    if not flt.matches_window(event.timestamp):
        return False
    return all(event.field_value(path) is not None for path in flt.present)


class InMemoryEventStore:
    def __init__(self, events: Optional[Iterable[ClickEvent]] = None) -> None:
        self._events: list[ClickEvent] = []
        if events:
            self.append(*events)

    def append(self, *events: ClickEvent) -> None:
        self._events.extend(events)

    def _select(self, flt: EventFilter) -> list[ClickEvent]:
        return [e for e in self._events if _matches(e, flt)]

    def _newest_first(self, flt: EventFilter) -> list[ClickEvent]:
        return sorted(self._select(flt), key=lambda e: e.timestamp, reverse=True)

    async def count(self, flt: EventFilter) -> int:
        return len(self._select(flt))

    async def aggregate(self, plan: QueryPlan) -> list[dict[str, Any]]:
        events = sorted(self._select(plan.filter), key=lambda e: e.timestamp)
        groups: dict[tuple, dict[str, Any]] = {}

        for event in events:
            key = tuple(_key_value(event, k) for k in plan.group_by)
            row = groups.get(key)
            if row is None:
                row = {k.name: v for k, v in zip(plan.group_by, key)}
                row["clicks"] = 0
                for name, path in plan.first.items():
                    row[name] = event.field_value(path)
                groups[key] = row
            row["clicks"] += 1

        names = plan.key_names

        def by_key(row: dict[str, Any]) -> tuple:
            return tuple(_sortable(row[n]) for n in names)

        rows = list(groups.values())
        if plan.sort == SortOrder.KEY_ASC:
            rows.sort(key=by_key)
        else:
            rows.sort(key=lambda r: (-r["clicks"], by_key(r)))

        if plan.limit is not None:
            rows = rows[: plan.limit]
        return rows

    async def distinct(self, path: str, flt: EventFilter) -> list[Any]:
        seen: dict[Any, None] = {}
        for event in self._select(flt):
            value = event.field_value(path)
            if value is not None:
                seen[value] = None
        return list(seen)

    async def find(
        self, flt: EventFilter, *, skip: int = 0, limit: int = 100
    ) -> list[ClickEvent]:
        return self._newest_first(flt)[skip : skip + limit]

    async def iter_batches(
        self, flt: EventFilter, batch_size: int = 100
    ) -> AsyncIterator[list[ClickEvent]]:
        events = self._newest_first(flt)
        for i in range(0, len(events), batch_size):
            yield events[i : i + batch_size]

    async def active_link_ids(self, start: datetime, end: datetime) -> list[str]:
        flt = EventFilter(start=start, end=end)
        return sorted({e.link_id for e in self._select(flt)})

    async def oldest_timestamp(self) -> Optional[datetime]:
        if not self._events:
            return None
        return min(ensure_utc(e.timestamp) for e in self._events)

    async def delete_before(self, cutoff: datetime) -> int:
        cutoff = ensure_utc(cutoff)
        kept = [e for e in self._events if ensure_utc(e.timestamp) >= cutoff]
        deleted = len(self._events) - len(kept)
        self._events = kept
        return deleted


class InMemoryLinkRepository:
    def __init__(self, links: Optional[dict[str, Optional[str]]] = None) -> None:
        # link_id -> owner_id
        self._links: dict[str, Optional[str]] = dict(links or {})

    def add(self, link_id: str, owner_id: Optional[str]) -> None:
        self._links[link_id] = owner_id

    def remove(self, link_id: str) -> None:
        self._links.pop(link_id, None)

    async def lookup_owner(self, link_id: str) -> Optional[str]:
        if link_id not in self._links:
            raise NotFoundError("Link not found", field="link_id")
        return self._links[link_id]

    async def list_link_ids(self, owner_id: str) -> list[str]:
        return sorted(lid for lid, owner in self._links.items() if owner == owner_id)

    async def list_owner_ids(self) -> list[str]:
        return sorted({owner for owner in self._links.values() if owner is not None})


class InMemoryRollupRepository:
    def __init__(self) -> None:
        self.records: dict[str, RollupRecord] = {}

    async def upsert(self, record: RollupRecord) -> None:
        self.records[record.id] = record.model_copy(deep=True)

    async def get(
        self, period: str, link_id: str, period_key: str
    ) -> Optional[RollupRecord]:
        return self.records.get(RollupRecord.make_id(period, link_id, period_key))

    async def existing_link_ids(self, period: str, period_key: str) -> set[str]:
        period = RollupPeriod(period).value
        return {
            r.link_id
            for r in self.records.values()
            if r.period == period and r.period_key == period_key
        }
