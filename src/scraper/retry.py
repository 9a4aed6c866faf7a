"""
Supermarket Monitor — Retry Controller

Bounded retries with exponential backoff plus jitter. Every attempt gets a
fresh Identity. Only transport failures are retried: a page that loads but
has no price is handled by the extraction engine, not here.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import structlog

from src.scraper.errors import RetryExhausted, TransportError
from src.scraper.identity import Identity

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryState:
    """Progress of one with_retry call. Never shared across calls."""
    attempt_index: int = 0
    last_error: BaseException | None = None
    identity: Identity | None = None
    errors: list[BaseException] = field(default_factory=list)


def backoff_delay(attempt_index: int, base_delay: float, rng: random.Random) -> float:
    """Delay after failed attempt `attempt_index`: base * 2^i + uniform(0, base)."""
    jitter = rng.uniform(0, base_delay) if base_delay > 0 else 0.0
    return base_delay * (2 ** attempt_index) + jitter


async def with_retry(
    op: Callable[[Identity], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    identity_factory: Callable[[], Identity],
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retry_on: tuple[type[BaseException], ...] = (TransportError,),
    label: str = "",
    state: RetryState | None = None,
) -> T:
    """
    Run `op` up to `max_attempts + 1` times.

    Args:
        op: Coroutine function taking the attempt's Identity.
        max_attempts: Number of retries after the first try.
        base_delay: Backoff base in seconds.
        identity_factory: Called once per attempt for a fresh Identity.
        rng: Jitter source (injectable for tests).
        sleep: Awaitable sleep (injectable for tests).
        retry_on: Exception types considered transient.
        label: Free-text tag for log lines (usually the transport name).
        state: Optional RetryState to expose progress to the caller.

    Returns:
        Whatever `op` returns on its first success.

    Raises:
        RetryExhausted: after the final attempt fails with a retryable error.
        Any non-retryable exception raised by `op`, unchanged.
    """
    if max_attempts < 0:
        raise ValueError("max_attempts must be >= 0")

    rng = rng or random.Random()
    state = state if state is not None else RetryState()
    total_attempts = max_attempts + 1

    for attempt_index in range(total_attempts):
        state.attempt_index = attempt_index
        state.identity = identity_factory()
        try:
            return await op(state.identity)
        except retry_on as exc:
            state.last_error = exc
            state.errors.append(exc)
            logger.warning(
                "retry_attempt_failed",
                label=label,
                attempt=attempt_index + 1,
                total_attempts=total_attempts,
                error=str(exc),
                error_type=type(exc).__name__,
                source="retry",
            )
            if attempt_index == total_attempts - 1:
                break
            delay = backoff_delay(attempt_index, base_delay, rng)
            logger.debug("retry_backoff", label=label, delay_seconds=round(delay, 2), source="retry")
            await sleep(delay)

    assert state.last_error is not None
    logger.error(
        "retry_exhausted",
        label=label,
        attempts=total_attempts,
        error=str(state.last_error),
        source="retry",
    )
    raise RetryExhausted(state.last_error, total_attempts, state.errors) from state.last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Caller-supplied retry bounds for one transport step."""
    max_attempts: int = 2
    base_delay: float = 2.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        from src.config import settings

        return cls(
            max_attempts=settings.SCRAPE_MAX_RETRIES,
            base_delay=settings.SCRAPE_BASE_DELAY_SECONDS,
        )
