"""Unit tests for ExportService."""

import csv
import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from errors import ForbiddenError, ValidationError
from services.export_service import EXPORT_FIELDS, ExportService, flatten_event

UTC = timezone.utc
T0 = datetime(2024, 3, 4, 10, tzinfo=UTC)


@pytest.fixture
def exporter(aggregation, events):
    return ExportService(aggregation, events, batch_size=2)


async def _collect(stream) -> tuple[list[str], str]:
    chunks = [chunk async for chunk in stream.chunks]
    return chunks, "".join(chunks)


def test_flatten_event(make_click):
    row = flatten_event(make_click(timestamp=T0, country="US", utm_campaign="launch"))
    assert len(row) == len(EXPORT_FIELDS)
    assert row["timestamp"] == "2024-03-04T10:00:00+00:00"
    assert row["location_country"] == "US"
    assert row["utm_campaign"] == "launch"
    assert row["device_type"] == "desktop"


class TestOpenExport:
    async def test_csv_streams_in_batches(self, exporter, events, make_click):
        events.append(*[make_click(timestamp=T0 + timedelta(minutes=i)) for i in range(5)])
        stream = await exporter.open_export("abc123", "user-1", "csv")

        assert stream.media_type == "text/csv"
        assert stream.filename.startswith("analytics-abc123-")
        assert stream.filename.endswith(".csv")

        chunks, body = await _collect(stream)
        # header + ceil(5 / 2) batches
        assert len(chunks) == 4
        rows = list(csv.reader(io.StringIO(body)))
        assert rows[0] == [label for label, _ in EXPORT_FIELDS]
        assert len(rows) == 6
        assert rows[1][0] == (T0 + timedelta(minutes=4)).isoformat()

    async def test_json_is_valid_document(self, exporter, events, make_click):
        events.append(*[make_click(timestamp=T0 + timedelta(minutes=i)) for i in range(3)])
        stream = await exporter.open_export(
            "abc123", "user-1", "json", start=T0, end=T0 + timedelta(days=1)
        )
        assert stream.media_type == "application/json"

        _, body = await _collect(stream)
        doc = json.loads(body)
        assert doc["metadata"]["link_id"] == "abc123"
        assert doc["metadata"]["total_records"] == 3
        assert doc["metadata"]["date_range"]["start_date"] == T0.isoformat()
        assert len(doc["events"]) == 3

    async def test_json_empty(self, exporter):
        stream = await exporter.open_export("abc123", "user-1", "json")
        _, body = await _collect(stream)
        assert json.loads(body)["events"] == []

    async def test_unknown_format(self, exporter):
        with pytest.raises(ValidationError) as exc:
            await exporter.open_export("abc123", "user-1", "xlsx")
        assert exc.value.field == "format"

    async def test_foreign_link_rejected_before_streaming(self, exporter):
        with pytest.raises(ForbiddenError):
            await exporter.open_export("xyz789", "user-1", "csv")
