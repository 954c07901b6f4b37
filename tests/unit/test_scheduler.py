"""Unit tests for RollupScheduler."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobs.scheduler import SCHEDULE, RollupScheduler
from schemas.models.rollup import JobOutcome
from shared.batching import BatchResult

NOW = datetime(2024, 3, 5, tzinfo=timezone.utc)


@pytest.fixture
def jobs():
    mock = MagicMock()
    for name in SCHEDULE:
        setattr(mock, name, AsyncMock(return_value=BatchResult(total=2, processed=2)))
    return mock


@pytest.fixture
async def scheduler(jobs):
    s = RollupScheduler(jobs, history_size=5)
    yield s
    await s.shutdown()


class TestRunJob:
    async def test_success_recorded(self, scheduler, jobs):
        run = await scheduler.run_job("daily_rollup", NOW)
        assert run.outcome == JobOutcome.SUCCEEDED
        assert run.processed == 2
        assert run.finished_at is not None
        jobs.daily_rollup.assert_awaited_once_with(NOW)

    async def test_partial_failure(self, scheduler, jobs):
        jobs.weekly_rollup.return_value = BatchResult(
            total=3, processed=2, failed=1, failed_ids=["bad"]
        )
        run = await scheduler.run_job("weekly_rollup", NOW)
        assert run.outcome == JobOutcome.COMPLETED_WITH_FAILURES
        assert run.failed_ids == ["bad"]

    async def test_exception_recorded_as_failed(self, scheduler, jobs):
        jobs.cleanup.side_effect = RuntimeError("db down")
        run = await scheduler.run_job("cleanup", NOW)
        assert run.outcome == JobOutcome.FAILED
        assert run.error == "db down"
        assert not scheduler.is_in_flight("cleanup")

    async def test_overlapping_tick_skipped(self, scheduler, jobs):
        release = asyncio.Event()

        async def slow(now):
            await release.wait()
            return BatchResult(total=1, processed=1)

        jobs.daily_rollup.side_effect = slow
        first = asyncio.create_task(scheduler.run_job("daily_rollup", NOW))
        await asyncio.sleep(0)
        assert scheduler.is_in_flight("daily_rollup")

        skipped = await scheduler.run_job("daily_rollup", NOW)
        assert skipped.outcome == JobOutcome.SKIPPED

        release.set()
        finished = await first
        assert finished.outcome == JobOutcome.SUCCEEDED
        assert jobs.daily_rollup.await_count == 1

    async def test_other_jobs_not_blocked(self, scheduler, jobs):
        release = asyncio.Event()

        async def slow(now):
            await release.wait()
            return BatchResult()

        jobs.daily_rollup.side_effect = slow
        first = asyncio.create_task(scheduler.run_job("daily_rollup", NOW))
        await asyncio.sleep(0)

        run = await scheduler.run_job("cleanup", NOW)
        assert run.outcome == JobOutcome.SUCCEEDED
        release.set()
        await first


class TestHistory:
    async def test_newest_first_and_filtered(self, scheduler):
        await scheduler.run_job("daily_rollup", NOW)
        await scheduler.run_job("cleanup", NOW)
        await scheduler.run_job("trending_refresh", NOW)

        assert [r.job for r in scheduler.history()] == [
            "trending_refresh",
            "cleanup",
            "daily_rollup",
        ]
        assert [r.job for r in scheduler.history(job="cleanup")] == ["cleanup"]
        assert len(scheduler.history(limit=2)) == 2

    async def test_bounded(self, scheduler):
        for _ in range(7):
            await scheduler.run_job("cleanup", NOW)
        assert len(scheduler.history()) == 5


class TestStart:
    async def test_registers_every_job(self, scheduler):
        scheduler.start()
        assert scheduler.running
        registered = {job.id for job in scheduler._scheduler.get_jobs()}
        assert registered == set(SCHEDULE)
        await scheduler.shutdown()

    async def test_shutdown(self, scheduler):
        scheduler.start()
        await scheduler.shutdown()
        assert not scheduler.running

    async def test_shutdown_before_start_is_noop(self, scheduler):
        await scheduler.shutdown()
        assert not scheduler.running

    async def test_job_names(self, scheduler):
        assert scheduler.job_names == list(SCHEDULE)
