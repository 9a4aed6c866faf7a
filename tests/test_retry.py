"""
Tests for the Retry Controller.

Attempt bounds, identity rotation, backoff schedule, and what is (not)
retried.
"""

from __future__ import annotations

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.scraper.errors import RetryExhausted, TransportError
from src.scraper.identity import Identity
from src.scraper.retry import RetryPolicy, RetryState, backoff_delay, with_retry


def _identity_factory() -> MagicMock:
    counter = iter(range(1000))
    return MagicMock(side_effect=lambda: Identity(user_agent=f"UA/{next(counter)}"))


@pytest.mark.asyncio
class TestWithRetry:
    async def test_four_total_attempts_with_three_retries(self) -> None:
        """max_attempts=3, every attempt failing -> exactly 4 tries, final error propagated."""
        errors = [TransportError(f"HTTP 503 #{i}", status_code=503) for i in range(4)]
        op = AsyncMock(side_effect=errors)
        identities = _identity_factory()
        sleep = AsyncMock()

        with pytest.raises(RetryExhausted) as exc_info:
            await with_retry(
                op,
                max_attempts=3,
                base_delay=1.0,
                identity_factory=identities,
                rng=random.Random(0),
                sleep=sleep,
            )

        assert op.await_count == 4
        assert identities.call_count == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error is errors[-1]
        assert exc_info.value.errors == errors
        assert exc_info.value.__cause__ is errors[-1]

    async def test_fresh_identity_per_attempt(self) -> None:
        op = AsyncMock(side_effect=[TransportError("boom"), TransportError("boom"), "ok"])
        identities = _identity_factory()

        result = await with_retry(
            op,
            max_attempts=3,
            base_delay=0,
            identity_factory=identities,
            sleep=AsyncMock(),
        )

        assert result == "ok"
        agents = [call.args[0].user_agent for call in op.await_args_list]
        assert agents == ["UA/0", "UA/1", "UA/2"]

    async def test_no_sleep_after_final_attempt(self) -> None:
        op = AsyncMock(side_effect=TransportError("down"))
        sleep = AsyncMock()

        with pytest.raises(RetryExhausted):
            await with_retry(
                op,
                max_attempts=2,
                base_delay=1.0,
                identity_factory=_identity_factory(),
                rng=random.Random(0),
                sleep=sleep,
            )

        assert sleep.await_count == 2

    async def test_backoff_grows_exponentially(self) -> None:
        op = AsyncMock(side_effect=TransportError("down"))
        sleep = AsyncMock()

        with pytest.raises(RetryExhausted):
            await with_retry(
                op,
                max_attempts=3,
                base_delay=2.0,
                identity_factory=_identity_factory(),
                rng=random.Random(5),
                sleep=sleep,
            )

        delays = [call.args[0] for call in sleep.await_args_list]
        assert len(delays) == 3
        for i, delay in enumerate(delays):
            assert 2.0 * 2 ** i <= delay < 2.0 * 2 ** i + 2.0

    async def test_non_transport_errors_are_not_retried(self) -> None:
        op = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await with_retry(
                op,
                max_attempts=3,
                base_delay=0,
                identity_factory=_identity_factory(),
                sleep=AsyncMock(),
            )

        assert op.await_count == 1

    async def test_zero_retries_means_single_attempt(self) -> None:
        op = AsyncMock(side_effect=TransportError("down"))

        with pytest.raises(RetryExhausted) as exc_info:
            await with_retry(
                op, max_attempts=0, base_delay=0, identity_factory=_identity_factory(), sleep=AsyncMock()
            )

        assert op.await_count == 1
        assert exc_info.value.attempts == 1

    async def test_negative_attempts_rejected(self) -> None:
        with pytest.raises(ValueError):
            await with_retry(
                AsyncMock(), max_attempts=-1, base_delay=0, identity_factory=_identity_factory()
            )

    async def test_state_exposes_progress(self) -> None:
        state = RetryState()
        op = AsyncMock(side_effect=[TransportError("first"), "ok"])

        await with_retry(
            op,
            max_attempts=2,
            base_delay=0,
            identity_factory=_identity_factory(),
            sleep=AsyncMock(),
            state=state,
        )

        assert state.attempt_index == 1
        assert str(state.last_error) == "first"
        assert state.identity.user_agent == "UA/1"


class TestBackoff:
    def test_jitter_within_base(self) -> None:
        rng = random.Random(99)
        for i in range(5):
            delay = backoff_delay(i, 1.5, rng)
            assert 1.5 * 2 ** i <= delay < 1.5 * 2 ** i + 1.5

    def test_zero_base_has_no_delay(self) -> None:
        assert backoff_delay(3, 0.0, random.Random(0)) == 0.0


class TestRetryPolicy:
    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.max_attempts == 2
        assert policy.base_delay == 2.0
