"""
Tests for the scheduler module.

Validates the once-per-day trigger, failure isolation and shutdown.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.pipeline.daily_job import JobSummary
from src.pipeline.scheduler import Scheduler


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 5, 30, tzinfo=timezone.utc))


@pytest.fixture
def job() -> AsyncMock:
    return AsyncMock(return_value=JobSummary(checked=2, captured=2))


@pytest.fixture
def scheduler(job: AsyncMock, clock: FakeClock) -> Scheduler:
    return Scheduler(MagicMock(), job=job, run_hour_utc=6, check_interval_seconds=0.01, clock=clock)


def test_scheduler_init(scheduler: Scheduler) -> None:
    assert scheduler._shutdown_event is not None
    assert scheduler.run_hour_utc == 6
    assert scheduler._last_run_date is None


def test_should_not_run_before_hour(scheduler: Scheduler) -> None:
    assert scheduler.should_run() is False


def test_should_run_after_hour(scheduler: Scheduler, clock: FakeClock) -> None:
    clock.now = clock.now.replace(hour=6, minute=0)
    assert scheduler.should_run() is True


@pytest.mark.asyncio
async def test_runs_once_per_day(scheduler: Scheduler, clock: FakeClock, job: AsyncMock) -> None:
    clock.now = clock.now.replace(hour=7)

    summary = await scheduler.run_job()

    assert summary.captured == 2
    job.assert_awaited_once_with(scheduler.session_factory)
    assert scheduler.should_run() is False

    clock.now += timedelta(days=1)
    assert scheduler.should_run() is True


@pytest.mark.asyncio
async def test_job_failure_is_contained(scheduler: Scheduler, clock: FakeClock, job: AsyncMock) -> None:
    clock.now = clock.now.replace(hour=7)
    job.side_effect = RuntimeError("database is locked")

    assert await scheduler.run_job() is None
    # no retry until the next day
    assert scheduler.should_run() is False


@pytest.mark.asyncio
async def test_run_loop_triggers_and_stops(scheduler: Scheduler, clock: FakeClock, job: AsyncMock) -> None:
    clock.now = clock.now.replace(hour=8)

    task = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.05)
    await scheduler.shutdown()
    await asyncio.wait_for(task, timeout=1)

    job.assert_awaited_once()
