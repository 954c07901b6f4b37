"""
Raw click event export (CSV / JSON), streamed in bounded batches.

Authorization and validation happen in ``open_export`` before the first
byte is produced, so a bad request still gets a proper error response. The
returned iterator then pulls events from the store ``batch_size`` at a time
and renders each batch to text; the full result set is never held in memory.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from errors import ValidationError
from repositories.protocol import EventStore
from schemas.models.click import ClickEvent
from schemas.models.query import EventFilter
from services.aggregation_service import AggregationService
from shared.datetime_utils import utcnow
from shared.logging import get_logger, should_sample

log = get_logger(__name__)

EXPORT_FORMATS = ("csv", "json")

# (column label, dotted path on ClickEvent)
EXPORT_FIELDS: list[tuple[str, str]] = [
    ("Timestamp", "timestamp"),
    ("Link ID", "link_id"),
    ("Country", "location.country"),
    ("Country Code", "location.country_code"),
    ("Region", "location.region"),
    ("City", "location.city"),
    ("Latitude", "location.latitude"),
    ("Longitude", "location.longitude"),
    ("Device Type", "device.type"),
    ("Device Brand", "device.brand"),
    ("Device Model", "device.model"),
    ("OS Name", "os.name"),
    ("OS Version", "os.version"),
    ("Browser Name", "browser.name"),
    ("Browser Version", "browser.version"),
    ("Referrer Domain", "referrer.domain"),
    ("Referrer Type", "referrer.type"),
    ("Referrer URL", "referrer.url"),
    ("UTM Source", "utm.source"),
    ("UTM Medium", "utm.medium"),
    ("UTM Campaign", "utm.campaign"),
    ("UTM Term", "utm.term"),
    ("UTM Content", "utm.content"),
]


def flatten_event(event: ClickEvent) -> dict[str, Any]:
    """One flat record keyed by the dotted path, timestamps as ISO strings."""
    row: dict[str, Any] = {}
    for _, path in EXPORT_FIELDS:
        value = event.field_value(path)
        if isinstance(value, datetime):
            value = value.isoformat()
        row[path.replace(".", "_")] = value
    return row


def _csv_text(rows: list[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerows(rows)
    return buffer.getvalue()


@dataclass
class ExportStream:
    filename: str
    media_type: str
    chunks: AsyncIterator[str]


class ExportService:
    def __init__(
        self,
        aggregation: AggregationService,
        events: EventStore,
        batch_size: int = 100,
    ) -> None:
        self.aggregation = aggregation
        self.events = events
        self.batch_size = batch_size

    async def open_export(
        self,
        link_id: str,
        user_id: str,
        fmt: str = "csv",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ExportStream:
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                f"Invalid export format: {fmt!r}",
                field="format",
                details={"allowed": list(EXPORT_FORMATS)},
            )
        query = await self.aggregation.prepare_query(link_id, user_id, start, end)
        flt = query.to_filter()

        filename = f"analytics-{link_id}-{utcnow().date().isoformat()}.{fmt}"
        if should_sample("stats_export"):
            log.info("analytics_export_started", link_id=link_id, format=fmt)

        if fmt == "csv":
            return ExportStream(filename, "text/csv", self._csv_chunks(flt))
        return ExportStream(
            filename, "application/json", self._json_chunks(flt, link_id, start, end)
        )

    async def _csv_chunks(self, flt: EventFilter) -> AsyncIterator[str]:
        yield _csv_text([[label for label, _ in EXPORT_FIELDS]])
        async for batch in self.events.iter_batches(flt, self.batch_size):
            yield _csv_text([list(flatten_event(e).values()) for e in batch])

    async def _json_chunks(
        self,
        flt: EventFilter,
        link_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> AsyncIterator[str]:
        metadata = {
            "link_id": link_id,
            "date_range": {
                "start_date": start.isoformat() if start else None,
                "end_date": end.isoformat() if end else None,
            },
            "total_records": await self.events.count(flt),
        }
        yield '{"metadata": ' + json.dumps(metadata) + ', "events": ['

        first = True
        async for batch in self.events.iter_batches(flt, self.batch_size):
            body = ", ".join(json.dumps(flatten_event(e)) for e in batch)
            yield body if first else ", " + body
            first = False

        yield "]}"
