"""
Cron scheduling for the rollup jobs, with run history.

Runs inside the application's event loop on an APScheduler
AsyncIOScheduler (all triggers in UTC):

    daily_rollup      00:00 every day
    weekly_rollup     01:00 Monday
    monthly_rollup    02:00 on the 1st
    cleanup           03:00 every day
    trending_refresh  minute 0 of every hour

Each job type has an in-flight flag. A tick that fires while the previous
run of the same job is still executing is skipped (not queued) and recorded
as ``skipped``. APScheduler's own instance limit is set above 1 so that the
tick reaches ``run_job`` and the skip shows up in the history.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from jobs.rollup_jobs import RollupJobs
from schemas.models.rollup import JobOutcome, JobRun
from shared.batching import BatchResult
from shared.datetime_utils import utcnow
from shared.logging import get_logger, log_with_context

log = get_logger(__name__)

SCHEDULE: dict[str, dict] = {
    "daily_rollup": {"hour": 0, "minute": 0},
    "weekly_rollup": {"day_of_week": "mon", "hour": 1, "minute": 0},
    "monthly_rollup": {"day": 1, "hour": 2, "minute": 0},
    "cleanup": {"hour": 3, "minute": 0},
    "trending_refresh": {"minute": 0},
}


class RollupScheduler:
    def __init__(
        self,
        jobs: RollupJobs,
        history_size: int = 100,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.jobs = jobs
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._history: deque[JobRun] = deque(maxlen=history_size)
        self._in_flight: set[str] = set()
        self._handlers: dict[str, Callable[[Optional[datetime]], Awaitable[BatchResult]]] = {
            "daily_rollup": jobs.daily_rollup,
            "weekly_rollup": jobs.weekly_rollup,
            "monthly_rollup": jobs.monthly_rollup,
            "cleanup": jobs.cleanup,
            "trending_refresh": jobs.trending_refresh,
        }

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def job_names(self) -> list[str]:
        return list(self._handlers)

    def is_in_flight(self, name: str) -> bool:
        return name in self._in_flight

    def start(self) -> None:
        if self._scheduler.running:
            log.warning("scheduler_already_running")
            return

        for name, cron in SCHEDULE.items():
            self._scheduler.add_job(
                self.run_job,
                trigger=CronTrigger(timezone="UTC", **cron),
                args=[name],
                id=name,
                name=name,
                replace_existing=True,
                max_instances=2,
                coalesce=True,
            )
        self._scheduler.start()
        log.info("scheduler_started", jobs=list(SCHEDULE))

    async def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # AsyncIOScheduler finishes stopping on the next loop iteration
            await asyncio.sleep(0)
            log.info("scheduler_stopped")

    def history(self, job: Optional[str] = None, limit: Optional[int] = None) -> list[JobRun]:
        """Recorded runs, newest first."""
        runs = [run for run in self._history if job is None or run.job == job]
        runs.reverse()
        return runs[:limit] if limit is not None else runs

    def _record(self, run: JobRun) -> JobRun:
        self._history.append(run)
        return run

    async def run_job(self, name: str, now: Optional[datetime] = None) -> JobRun:
        """Execute one job now, unless a run of the same job is in flight."""
        handler = self._handlers[name]
        started = utcnow()
        job_log = log_with_context(log, job=name)

        if name in self._in_flight:
            job_log.warning("job_tick_skipped", reason="previous_run_in_flight")
            return self._record(
                JobRun(
                    job=name,
                    started_at=started,
                    finished_at=started,
                    outcome=JobOutcome.SKIPPED,
                )
            )

        self._in_flight.add(name)
        job_log.info("job_started")
        try:
            result = await handler(now)
        except Exception as e:
            job_log.exception("job_failed", error=str(e), error_type=type(e).__name__)
            return self._record(
                JobRun(
                    job=name,
                    started_at=started,
                    finished_at=utcnow(),
                    outcome=JobOutcome.FAILED,
                    error=str(e),
                )
            )
        finally:
            self._in_flight.discard(name)

        outcome = (
            JobOutcome.COMPLETED_WITH_FAILURES if result.failed else JobOutcome.SUCCEEDED
        )
        run = self._record(
            JobRun(
                job=name,
                started_at=started,
                finished_at=utcnow(),
                outcome=outcome,
                total=result.total,
                processed=result.processed,
                failed=result.failed,
                failed_ids=result.failed_ids,
            )
        )
        job_log.info(
            "job_finished",
            outcome=run.outcome,
            processed=run.processed,
            failed=run.failed,
            total=run.total,
        )
        return run
