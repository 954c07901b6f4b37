"""MongoDB link ownership lookups (the links collection is owned by link CRUD)."""

from __future__ import annotations

from typing import Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection

from errors import NotFoundError


class MongoLinkRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def lookup_owner(self, link_id: str) -> Optional[str]:
        doc = await self._col.find_one({"_id": link_id}, projection={"owner_id": 1})
        if doc is None:
            raise NotFoundError("Link not found", field="link_id")
        owner = doc.get("owner_id")
        return str(owner) if owner is not None else None

    async def list_link_ids(self, owner_id: str) -> list[str]:
        cursor = self._col.find({"owner_id": owner_id}, projection={"_id": 1}).sort(
            "_id", ASCENDING
        )
        docs = await cursor.to_list(length=None)
        return [str(doc["_id"]) for doc in docs]

    async def list_owner_ids(self) -> list[str]:
        owners = await self._col.distinct("owner_id", {"owner_id": {"$ne": None}})
        return sorted(str(o) for o in owners)
