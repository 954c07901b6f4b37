"""MongoDB rollup persistence. Writes are whole-document upserts by _id."""

from __future__ import annotations

from typing import Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.rollup import RollupPeriod, RollupRecord


class MongoRollupRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("period", ASCENDING), ("period_key", ASCENDING), ("link_id", ASCENDING)]
        )
        await self._col.create_index([("link_id", ASCENDING), ("period", ASCENDING)])

    async def upsert(self, record: RollupRecord) -> None:
        await self._col.replace_one({"_id": record.id}, record.to_mongo(), upsert=True)

    async def get(
        self, period: str, link_id: str, period_key: str
    ) -> Optional[RollupRecord]:
        doc = await self._col.find_one(
            {"_id": RollupRecord.make_id(period, link_id, period_key)}
        )
        return RollupRecord.from_mongo(doc)

    async def existing_link_ids(self, period: str, period_key: str) -> set[str]:
        cursor = self._col.find(
            {"period": RollupPeriod(period).value, "period_key": period_key},
            projection={"link_id": 1}
        )
        docs = await cursor.to_list(length=None)
        return {doc["link_id"] for doc in docs}
