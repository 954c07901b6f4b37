"""Repository protocols — services depend on these, not the concrete stores."""

from datetime import datetime
from typing import Any, AsyncIterator, Optional, Protocol

from schemas.models.click import ClickEvent
from schemas.models.query import EventFilter, QueryPlan
from schemas.models.rollup import RollupRecord


class EventStore(Protocol):
    async def count(self, flt: EventFilter) -> int: ...

    async def aggregate(self, plan: QueryPlan) -> list[dict[str, Any]]: ...

    async def distinct(self, path: str, flt: EventFilter) -> list[Any]: ...

    async def find(
        self, flt: EventFilter, *, skip: int = 0, limit: int = 100
    ) -> list[ClickEvent]: ...

    def iter_batches(
        self, flt: EventFilter, batch_size: int = 100
    ) -> AsyncIterator[list[ClickEvent]]: ...

    async def active_link_ids(self, start: datetime, end: datetime) -> list[str]: ...

    async def oldest_timestamp(self) -> Optional[datetime]: ...

    async def delete_before(self, cutoff: datetime) -> int: ...


class LinkRepository(Protocol):
    async def lookup_owner(self, link_id: str) -> Optional[str]:
        """Owner id of *link_id*; raises NotFoundError for an unknown link."""
        ...

    async def list_link_ids(self, owner_id: str) -> list[str]: ...

    async def list_owner_ids(self) -> list[str]: ...


class RollupRepository(Protocol):
    async def upsert(self, record: RollupRecord) -> None: ...

    async def get(
        self, period: str, link_id: str, period_key: str
    ) -> Optional[RollupRecord]: ...

    async def existing_link_ids(self, period: str, period_key: str) -> set[str]: ...
