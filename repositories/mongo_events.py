"""
MongoDB click event store (pymongo async API).

Read-only apart from ``delete_before``, which the cleanup job calls once
the rollups covering the purged days are persisted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.collection import AsyncCollection

from repositories.pipeline import build_match, build_pipeline
from schemas.models.click import ClickEvent
from schemas.models.query import EventFilter, QueryPlan
from shared.datetime_utils import ensure_utc
from shared.logging import get_logger

log = get_logger(__name__)


class MongoEventStore:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        # No TTL index: expiry is owned by the cleanup job so that events are
        # only removed after their daily rollups exist.
        await self._col.create_index([("link_id", ASCENDING), ("timestamp", ASCENDING)])
        await self._col.create_index([("owner_id", ASCENDING), ("timestamp", ASCENDING)])
        await self._col.create_index([("timestamp", ASCENDING)])

    async def count(self, flt: EventFilter) -> int:
        return await self._col.count_documents(build_match(flt))

    async def aggregate(self, plan: QueryPlan) -> list[dict[str, Any]]:
        cursor = await self._col.aggregate(build_pipeline(plan))
        return await cursor.to_list(length=None)

    async def distinct(self, path: str, flt: EventFilter) -> list[Any]:
        values = await self._col.distinct(path, build_match(flt))
        return [v for v in values if v is not None]

    async def find(
        self, flt: EventFilter, *, skip: int = 0, limit: int = 100
    ) -> list[ClickEvent]:
        cursor = (
            self._col.find(build_match(flt))
            .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=None)
        return [ClickEvent.from_mongo(doc) for doc in docs]

    async def iter_batches(
        self, flt: EventFilter, batch_size: int = 100
    ) -> AsyncIterator[list[ClickEvent]]:
        """Yield events newest first in lists of at most *batch_size*."""
        cursor = (
            self._col.find(build_match(flt))
            .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
            .batch_size(batch_size)
        )
        batch: list[ClickEvent] = []
        async for doc in cursor:
            batch.append(ClickEvent.from_mongo(doc))
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    async def active_link_ids(self, start: datetime, end: datetime) -> list[str]:
        ids = await self._col.distinct(
            "link_id", {"timestamp": {"$gte": start, "$lt": end}}
        )
        return sorted(str(i) for i in ids)

    async def oldest_timestamp(self) -> Optional[datetime]:
        doc = await self._col.find_one(
            {}, projection={"timestamp": 1}, sort=[("timestamp", ASCENDING)]
        )
        if doc is None:
            return None
        return ensure_utc(doc["timestamp"])

    async def delete_before(self, cutoff: datetime) -> int:
        result = await self._col.delete_many({"timestamp": {"$lt": cutoff}})
        log.info("events_purged", cutoff=cutoff.isoformat(), deleted=result.deleted_count)
        return result.deleted_count
