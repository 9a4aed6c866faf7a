"""
Supermarket Monitor — Request Throttle

Spaces consecutive scrapes by a minimum interval and caps requests per
hour. The state is an explicit object owned by the driving job and passed
in, never a module-level counter.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from src.config import settings

logger = structlog.get_logger(__name__)

_HOUR_SECONDS = 3600


class ThrottleState:
    """
    Minimum inter-request interval plus hourly request cap.

    Only one logical caller uses an instance at a time (the daily job scrapes
    sequentially), so no locking is needed.

    Usage:
        throttle = ThrottleState.from_settings()
        if await throttle.acquire():
            ...scrape...
    """

    def __init__(
        self,
        min_interval_seconds: float,
        max_requests_per_hour: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval_seconds = min_interval_seconds
        self.max_requests_per_hour = max_requests_per_hour
        self._clock = clock
        self._sleep = sleep
        self.last_request_at: float | None = None
        self.requests_this_hour: int = 0
        self.hour_started_at: float = clock()

    @classmethod
    def from_settings(cls) -> ThrottleState:
        return cls(
            min_interval_seconds=settings.SCRAPE_MIN_INTERVAL_SECONDS,
            max_requests_per_hour=settings.SCRAPE_MAX_REQUESTS_PER_HOUR,
        )

    def _reset_hour_if_needed(self) -> None:
        now = self._clock()
        if now - self.hour_started_at >= _HOUR_SECONDS:
            self.requests_this_hour = 0
            self.hour_started_at = now

    def can_request(self) -> bool:
        """Check if we're under the hourly cap."""
        self._reset_hour_if_needed()
        return self.requests_this_hour < self.max_requests_per_hour

    @property
    def requests_remaining(self) -> int:
        self._reset_hour_if_needed()
        return max(0, self.max_requests_per_hour - self.requests_this_hour)

    def seconds_until_ready(self) -> float:
        if self.last_request_at is None:
            return 0.0
        elapsed = self._clock() - self.last_request_at
        return max(0.0, self.min_interval_seconds - elapsed)

    def record_request(self) -> None:
        self._reset_hour_if_needed()
        now = self._clock()
        # never move backwards, even if the clock source misbehaves
        if self.last_request_at is None or now > self.last_request_at:
            self.last_request_at = now
        self.requests_this_hour += 1

    async def acquire(self) -> bool:
        """
        Wait until the next request is allowed and record it.

        Returns:
            False without waiting when the hourly cap is reached.
        """
        if not self.can_request():
            logger.warning(
                "throttle_hourly_cap_reached",
                max_requests_per_hour=self.max_requests_per_hour,
                source="throttle",
            )
            return False

        wait = self.seconds_until_ready()
        if wait > 0:
            logger.debug("throttle_wait", delay_seconds=round(wait, 2), source="throttle")
            await self._sleep(wait)

        self.record_request()
        return True
