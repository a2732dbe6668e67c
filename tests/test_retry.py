"""Tests for RetryPolicy and the retry helpers."""

from __future__ import annotations

import asyncio
import random

import pytest
from pydantic import ValidationError

from flowgate import ConfigurationError, RetryPolicy, retry, retry_sync, retrying
from flowgate.foundation.config import FlowgateSettings
from flowgate.runtime.retry import Backoff, ExponentialBackoff


class Flaky:
    """Fails ``failures`` times with ``exc``, then returns ``value``."""

    def __init__(self, failures: int, exc: type[Exception] = ConnectionError, value: str = "ok") -> None:
        self.failures, self.exc, self.value = failures, exc, value
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"failure {self.calls}")
        return self.value

    async def call_async(self) -> str:
        await asyncio.sleep(0)
        return self()


class TestRetry:
    @pytest.mark.asyncio
    async def test_delays_follow_exponential_backoff(self) -> None:
        sleeps: list[float] = []

        async def fake_sleep(d: float) -> None:
            sleeps.append(d)

        op = Flaky(failures=2)
        policy = RetryPolicy(max_attempts=3, base_delay=0.1, jitter=False)
        assert await retry(op.call_async, policy, sleep=fake_sleep) == "ok"
        assert op.calls == 3
        assert sleeps == [pytest.approx(0.1), pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_exactly_max_attempts_then_propagates(self) -> None:
        async def no_sleep(_: float) -> None:
            return None

        op = Flaky(failures=10)
        with pytest.raises(ConnectionError) as exc_info:
            await retry(op.call_async, RetryPolicy(max_attempts=3), name="fetch", sleep=no_sleep)
        assert op.calls == 3
        assert "[fetch] gave up after attempt 3/3" in exc_info.value.__notes__

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self) -> None:
        op = Flaky(failures=5, exc=KeyError)
        policy = RetryPolicy(max_attempts=5, should_retry=lambda exc: isinstance(exc, ConnectionError))
        with pytest.raises(KeyError):
            await retry(op.call_async, policy)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self) -> None:
        calls = 0

        async def cancelled() -> None:
            nonlocal calls
            calls += 1
            raise asyncio.CancelledError

        with pytest.raises(asyncio.CancelledError):
            await retry(cancelled, RetryPolicy(max_attempts=5))
        assert calls == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self) -> None:
        seen: list[tuple[int, str, float]] = []

        async def no_sleep(_: float) -> None:
            return None

        policy = RetryPolicy(
            max_attempts=3, base_delay=0.5, jitter=False,
            on_retry=lambda attempt, exc, delay: seen.append((attempt, type(exc).__name__, delay)),
        )
        await retry(Flaky(failures=2).call_async, policy, sleep=no_sleep)
        assert seen == [(1, "ConnectionError", 0.5), (2, "ConnectionError", 1.0)]

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self) -> None:
        policy = RetryPolicy(max_attempts=1)
        assert policy.is_disabled
        op = Flaky(failures=1)
        with pytest.raises(ConnectionError):
            await retry(op.call_async, policy)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_real_sleep_between_attempts(self) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        op = Flaky(failures=2)
        await retry(op.call_async, RetryPolicy(max_attempts=3, base_delay=0.01, jitter=False))
        assert loop.time() - start >= 0.03


class TestRetrySync:
    def test_retry_sync(self) -> None:
        sleeps: list[float] = []
        op = Flaky(failures=2)
        policy = RetryPolicy(max_attempts=4, base_delay=1.0, factor=3.0, jitter=False)
        assert retry_sync(op, policy, sleep=sleeps.append) == "ok"
        assert sleeps == [1.0, 3.0]

    def test_retrying_decorator_sync(self) -> None:
        op = Flaky(failures=1)

        @retrying(RetryPolicy(max_attempts=2, base_delay=0.001))
        def call() -> str:
            return op()

        assert call() == "ok"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_retrying_decorator_async(self) -> None:
        op = Flaky(failures=1)

        @retrying(RetryPolicy(max_attempts=2, base_delay=0.001))
        async def call(suffix: str) -> str:
            return await op.call_async() + suffix

        assert await call("!") == "ok!"
        assert call.__name__ == "call"


class TestPolicy:
    def test_delays_are_capped(self) -> None:
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=3.0, factor=10.0, jitter=False)
        assert [policy.delay_for(a) for a in (1, 2, 3)] == [1.0, 3.0, 3.0]

    def test_jitter_bounds(self) -> None:
        policy = RetryPolicy(base_delay=0.1, jitter=True)
        for _ in range(200):
            assert 0.05 <= policy.delay_for(1) < 0.15

    def test_backoff_protocol(self) -> None:
        backoff = ExponentialBackoff(base_delay=0.2, max_delay=1.0, factor=2.0, jitter=False)
        assert isinstance(backoff, Backoff)
        assert [backoff.delay(r) for r in range(4)] == [0.2, 0.4, 0.8, 1.0]
        assert backoff.delay(5000) == 1.0

    def test_seeded_jitter_is_reproducible(self) -> None:
        a = ExponentialBackoff(rng=random.Random(7))
        b = ExponentialBackoff(rng=random.Random(7))
        assert [a.delay(r) for r in range(5)] == [b.delay(r) for r in range(5)]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"base_delay": 0},
            {"base_delay": -0.1},
            {"factor": 0.5},
            {"base_delay": 2.0, "max_delay": 1.0},
            {"unknown": 1},
        ],
    )
    def test_invalid_configuration(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ConfigurationError):
            RetryPolicy(**kwargs)

    def test_policy_is_immutable(self) -> None:
        policy = RetryPolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 9  # type: ignore[misc]

    def test_from_settings(self) -> None:
        policy = RetryPolicy.from_settings(FlowgateSettings(), jitter=False)
        assert (policy.max_attempts, policy.base_delay, policy.jitter) == (3, 0.1, False)

    def test_dump_excludes_callables(self) -> None:
        dumped = RetryPolicy(jitter=False).model_dump()
        assert "should_retry" not in dumped
        assert dumped["is_disabled"] is False
