"""
Bounded fan-out over many ids with per-item failure isolation.

Used by the rollup jobs and by per-user trend/alert scans: one bad link
(deleted mid-scan, slow query, corrupt document) is logged with its id,
counted as failed, and never stops the remaining items.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

from shared.logging import get_logger

log = get_logger(__name__)


@dataclass
class BatchResult:
    total: int = 0
    processed: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)


async def run_bounded(
    item_ids: Sequence[str],
    worker: Callable[[str], Awaitable[Any]],
    *,
    concurrency: int = 8,
    timeout: Optional[float] = None,
    label: str = "link_id",
) -> BatchResult:
    """Run *worker* for every id with at most *concurrency* in flight.

    Results are keyed by id in ``BatchResult.results``. Exceptions and
    timeouts are caught per item; ``asyncio.CancelledError`` propagates.
    """
    result = BatchResult(total=len(item_ids))
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(item_id: str) -> None:
        async with semaphore:
            try:
                if timeout is not None:
                    value = await asyncio.wait_for(worker(item_id), timeout)
                else:
                    value = await worker(item_id)
            except Exception as e:
                result.failed += 1
                result.failed_ids.append(item_id)
                log.error(
                    "batch_item_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    **{label: item_id},
                )
                return
            result.processed += 1
            result.results[item_id] = value

    await asyncio.gather(*(_one(item_id) for item_id in item_ids))
    result.failed_ids.sort()
    return result
