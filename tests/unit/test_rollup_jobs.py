"""Unit tests for RollupJobs."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from config import AnalyticsSettings
from jobs.rollup_jobs import RollupJobs, period_key
from schemas.models.query import EventFilter
from schemas.models.rollup import RollupPeriod
from services.trend_service import TrendService

UTC = timezone.utc
# Tuesday; previous day is Monday 2024-03-04
NOW = datetime(2024, 3, 5, 0, 5, tzinfo=UTC)
DAY = datetime(2024, 3, 4, tzinfo=UTC)


@pytest.fixture
def settings():
    return AnalyticsSettings(batch_concurrency=2, batch_item_timeout_seconds=5, retention_days=30)


@pytest.fixture
def trends(events, links, no_cache):
    return TrendService(events, links, no_cache)


@pytest.fixture
def jobs(events, rollups, links, trends, settings):
    return RollupJobs(events, rollups, links, trends, settings=settings)


@pytest.mark.parametrize(
    "period, start, expected",
    [
        (RollupPeriod.DAY, datetime(2024, 3, 4, tzinfo=UTC), "2024-03-04"),
        (RollupPeriod.WEEK, datetime(2024, 3, 4, tzinfo=UTC), "2024-W10"),
        (RollupPeriod.MONTH, datetime(2024, 2, 1, tzinfo=UTC), "2024-02"),
    ],
)
def test_period_key(period, start, expected):
    assert period_key(period, start) == expected


class TestDailyRollup:
    async def test_builds_one_record_per_active_link(self, jobs, events, rollups, make_click):
        events.append(
            make_click(link_id="abc123", timestamp=DAY + timedelta(hours=1), visitor="v1", country="US"),
            make_click(link_id="abc123", timestamp=DAY + timedelta(hours=2), visitor="v1", country="DE"),
            make_click(link_id="abc123", timestamp=DAY + timedelta(hours=3), visitor="v2", country="US"),
            make_click(link_id="def456", timestamp=DAY + timedelta(hours=4)),
            # outside the window
            make_click(link_id="xyz789", timestamp=NOW),
        )
        result = await jobs.daily_rollup(NOW)

        assert result.total == 2
        assert result.processed == 2
        assert result.failed == 0

        record = await rollups.get("day", "abc123", "2024-03-04")
        assert record.clicks == 3
        assert record.unique_visitors == 2
        assert [(c.country, c.clicks) for c in record.top_countries] == [("US", 2), ("DE", 1)]
        assert record.start == DAY
        assert record.end == DAY + timedelta(days=1)
        assert await rollups.get("day", "xyz789", "2024-03-04") is None

    async def test_rerun_is_idempotent(self, jobs, events, rollups, make_click):
        events.append(make_click(timestamp=DAY + timedelta(hours=1), country="US"))
        await jobs.daily_rollup(NOW)
        first = {k: r.model_dump_json() for k, r in rollups.records.items()}

        await jobs.daily_rollup(NOW)
        second = {k: r.model_dump_json() for k, r in rollups.records.items()}
        assert first == second

    async def test_failing_link_does_not_stop_others(self, jobs, events, rollups, make_click):
        for link_id in ("a1", "a2", "a3"):
            events.append(make_click(link_id=link_id, timestamp=DAY + timedelta(hours=1)))

        original = rollups.upsert

        async def flaky(record):
            if record.link_id == "a2":
                raise RuntimeError("write failed")
            await original(record)

        rollups.upsert = flaky
        result = await jobs.daily_rollup(NOW)

        assert result.processed == 2
        assert result.failed == 1
        assert result.failed_ids == ["a2"]
        assert await rollups.existing_link_ids("day", "2024-03-04") == {"a1", "a3"}

    async def test_enumeration_failure_aborts(self, jobs, events):
        events.active_link_ids = AsyncMock(side_effect=RuntimeError("db down"))
        with pytest.raises(RuntimeError, match="db down"):
            await jobs.daily_rollup(NOW)


class TestWeeklyAndMonthly:
    async def test_weekly_daily_breakdown(self, jobs, events, rollups, make_click):
        monday = datetime(2024, 2, 26, tzinfo=UTC)
        events.append(
            make_click(timestamp=monday + timedelta(hours=1)),
            make_click(timestamp=monday + timedelta(days=2)),
            make_click(timestamp=monday + timedelta(days=2, hours=5)),
        )
        await jobs.weekly_rollup(NOW)
        record = await rollups.get("week", "abc123", "2024-W09")
        assert record.clicks == 3
        assert [(b.key, b.clicks) for b in record.daily_breakdown] == [
            ("2024-02-26", 1),
            ("2024-02-28", 2),
        ]

    async def test_monthly_weekly_breakdown(self, jobs, events, rollups, make_click):
        events.append(
            make_click(timestamp=datetime(2024, 2, 1, tzinfo=UTC), country="US"),
            make_click(timestamp=datetime(2024, 2, 20, tzinfo=UTC), country="FR"),
        )
        await jobs.monthly_rollup(NOW)
        record = await rollups.get("month", "abc123", "2024-02")
        assert record.clicks == 2
        assert [b.key for b in record.weekly_breakdown] == ["2024-W05", "2024-W08"]
        assert {c.country for c in record.top_countries} == {"US", "FR"}


class TestCleanup:
    async def test_backfills_then_purges(self, jobs, events, rollups, make_click):
        old = NOW - timedelta(days=40)
        events.append(
            make_click(link_id="abc123", timestamp=old),
            make_click(link_id="def456", timestamp=old + timedelta(days=1)),
            make_click(link_id="abc123", timestamp=NOW - timedelta(days=1)),
        )
        result = await jobs.cleanup(NOW)

        assert result.failed == 0
        assert result.processed == 2
        assert result.results["deleted"] == 2
        assert await events.count(EventFilter()) == 1
        assert await rollups.get("day", "abc123", period_key("day", old)) is not None

    async def test_nothing_to_purge(self, jobs, events, make_click):
        events.append(make_click(timestamp=NOW - timedelta(days=1)))
        result = await jobs.cleanup(NOW)
        assert result.results == {"deleted": 0, "purged_before": None}
        assert await events.count(EventFilter()) == 1

    async def test_halts_before_unrolled_day(self, jobs, events, rollups, make_click):
        first_day = datetime(2024, 1, 10, tzinfo=UTC)
        events.append(
            make_click(link_id="abc123", timestamp=first_day),
            make_click(link_id="bad", timestamp=first_day + timedelta(days=1)),
            make_click(link_id="abc123", timestamp=first_day + timedelta(days=2)),
        )
        original = rollups.upsert

        async def flaky(record):
            if record.link_id == "bad":
                raise RuntimeError("write failed")
            await original(record)

        rollups.upsert = flaky
        result = await jobs.cleanup(NOW)

        assert result.failed_ids == ["bad"]
        assert result.results["purged_before"] == (first_day + timedelta(days=1)).isoformat()
        # The first day was rolled up and purged; everything from the failed day on stays
        assert await events.count(EventFilter()) == 2


class TestTrendingRefresh:
    async def test_refreshes_every_owner(self, jobs, trends, monkeypatch):
        refresh = AsyncMock()
        monkeypatch.setattr(trends, "refresh_for_user", refresh)
        result = await jobs.trending_refresh(NOW)

        assert result.processed == 2
        owners = {call.args[0] for call in refresh.await_args_list}
        periods = {call.args[1] for call in refresh.await_args_list}
        assert owners == {"user-1", "user-2"}
        assert periods == {"day", "week", "month"}
