"""
Supermarket Monitor — Daily Scheduler

Runs the daily job once per UTC day at DAILY_RUN_HOUR_UTC. The loop wakes
every SCHEDULER_CHECK_INTERVAL_SECONDS to check whether the run is due and
stops cleanly on SIGTERM/SIGINT.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.pipeline.daily_job import JobSummary, run_daily_job

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Async scheduler for the daily scrape.

    At most one run per UTC date. A run that raises is logged and the loop
    keeps going; the next attempt is the following day.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job: Callable[[async_sessionmaker[AsyncSession]], Awaitable[JobSummary]] = run_daily_job,
        run_hour_utc: int | None = None,
        check_interval_seconds: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self._job = job
        self.run_hour_utc = settings.DAILY_RUN_HOUR_UTC if run_hour_utc is None else run_hour_utc
        self.check_interval_seconds = (
            check_interval_seconds
            if check_interval_seconds is not None
            else settings.SCHEDULER_CHECK_INTERVAL_SECONDS
        )
        self._clock = clock
        self._shutdown_event = asyncio.Event()
        self._last_run_date: date | None = None

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    def should_run(self) -> bool:
        """True once the run hour has been reached and today's run has not happened."""
        now = self._clock()
        if self._last_run_date == now.date():
            return False
        return now.hour >= self.run_hour_utc

    async def run_job(self) -> JobSummary | None:
        self._last_run_date = self._clock().date()
        logger.info("scheduler_daily_job_start", run_date=self._last_run_date.isoformat())
        try:
            summary = await self._job(self.session_factory)
        except Exception as e:
            logger.error(
                "scheduler_daily_job_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        logger.info("scheduler_daily_job_complete", **summary.as_dict())
        return summary

    async def run(self) -> None:
        """
        Main scheduler loop. Runs indefinitely until shutdown is signaled.
        """
        logger.info(
            "scheduler_started",
            run_hour_utc=self.run_hour_utc,
            check_interval_seconds=self.check_interval_seconds,
        )

        try:
            while not self._shutdown_event.is_set():
                try:
                    if self.should_run():
                        await self.run_job()

                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.check_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    # no shutdown signal yet
                    continue

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.

    Args:
        session_factory: SQLAlchemy async session factory.
    """
    scheduler = Scheduler(session_factory)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
