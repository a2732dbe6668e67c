"""Tests for token bucket and sliding window limiters."""

from __future__ import annotations

import asyncio
import time

import pytest

from flowgate import ConfigurationError, GateTimeoutError, RateLimitConfig, SlidingWindow, TokenBucket
from flowgate.foundation.config import FlowgateSettings
from flowgate.runtime.ratelimit import RateLimiter, create_limiter, rate_limited

from .conftest import FakeClock


class TestTokenBucket:
    @pytest.mark.asyncio
    async def test_burst_then_paced(self) -> None:
        bucket = TokenBucket(rate=10, capacity=10, name="api")
        start = time.monotonic()
        for _ in range(10):
            await bucket.acquire()
        assert time.monotonic() - start < 0.05

        waited = await bucket.acquire()
        assert 0.07 <= waited <= 0.2

    @pytest.mark.asyncio
    async def test_wait_time_with_fake_clock(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=2, capacity=2, clock=clock, sleep=clock.sleep)
        assert await bucket.acquire() == 0.0
        assert await bucket.acquire() == 0.0
        assert await bucket.acquire() == pytest.approx(0.5)
        assert clock.sleeps == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_multi_unit_request(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=4, capacity=4, clock=clock, sleep=clock.sleep)
        await bucket.acquire(3)
        assert bucket.available() == pytest.approx(1.0)
        assert await bucket.acquire(3) == pytest.approx(0.5)
        assert bucket.available() == pytest.approx(0.0)

    def test_try_acquire(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=2, capacity=2, clock=clock)
        assert bucket.try_acquire()
        assert bucket.try_acquire()
        assert not bucket.try_acquire()
        clock.advance(0.5)
        assert bucket.try_acquire()

    def test_refill_capped_at_capacity(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=100, capacity=3, clock=clock)
        bucket.try_acquire(3)
        clock.advance(60)
        assert bucket.available() == 3.0

    @pytest.mark.asyncio
    async def test_timeout_consumes_nothing(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=1, capacity=1, clock=clock, sleep=clock.sleep)
        await bucket.acquire()
        with pytest.raises(GateTimeoutError):
            await bucket.acquire(timeout=0.5)
        assert clock.sleeps == []
        clock.advance(1.0)
        assert bucket.try_acquire()

    @pytest.mark.asyncio
    async def test_waiters_admitted_in_arrival_order(self) -> None:
        bucket = TokenBucket(rate=200, capacity=1)
        order: list[int] = []

        async def caller(i: int) -> None:
            await bucket.acquire()
            order.append(i)

        await asyncio.gather(*(caller(i) for i in range(5)))
        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_tokens(self, clock: FakeClock) -> None:
        gate = asyncio.Event()

        async def stalled_sleep(_: float) -> None:
            await gate.wait()

        bucket = TokenBucket(rate=1, capacity=1, clock=clock, sleep=stalled_sleep)
        await bucket.acquire()
        waiter = asyncio.create_task(bucket.acquire())
        await asyncio.sleep(0)
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        assert waiter.cancelled()
        assert bucket.waiting == 0
        clock.advance(1.0)
        assert bucket.try_acquire()

    @pytest.mark.parametrize("n", [0, -1, 3, True])
    def test_invalid_request_size(self, n: object) -> None:
        with pytest.raises(ConfigurationError):
            TokenBucket(rate=1, capacity=2).try_acquire(n)  # type: ignore[arg-type]

    @pytest.mark.parametrize(("rate", "capacity"), [(0, 1), (-1, 1), (1, 0), (1, 1.5)])
    def test_invalid_construction(self, rate: float, capacity: int) -> None:
        with pytest.raises(ConfigurationError):
            TokenBucket(rate, capacity)

    def test_satisfies_protocol(self) -> None:
        assert isinstance(TokenBucket(1, 1), RateLimiter)
        assert isinstance(SlidingWindow(1, 1.0), RateLimiter)


class TestSlidingWindow:
    @pytest.mark.asyncio
    async def test_hard_cap_per_window(self, clock: FakeClock) -> None:
        window = SlidingWindow(limit=3, window_size=1.0, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            assert await window.acquire() == 0.0
            clock.advance(0.25)
        # oldest stamp (t=0) ages out at t=1.0
        assert await window.acquire() == pytest.approx(0.25)
        assert clock.now == pytest.approx(1.0)
        assert window.available() == 0.0

    def test_stamps_expire_after_full_window(self, clock: FakeClock) -> None:
        window = SlidingWindow(limit=2, window_size=10.0, clock=clock)
        assert window.try_acquire(2)
        clock.advance(9.5)
        assert not window.try_acquire()
        clock.advance(0.5)
        assert window.try_acquire()

    @pytest.mark.asyncio
    async def test_timeout(self, clock: FakeClock) -> None:
        window = SlidingWindow(limit=1, window_size=5.0, clock=clock, sleep=clock.sleep)
        await window.acquire()
        with pytest.raises(GateTimeoutError):
            await window.acquire(timeout=1.0)
        assert window.available() == 0.0

    @pytest.mark.parametrize(("limit", "window_size"), [(0, 1.0), (2, 0), (2, -1.0), (1.5, 1.0)])
    def test_invalid_construction(self, limit: int, window_size: float) -> None:
        with pytest.raises(ConfigurationError):
            SlidingWindow(limit, window_size)

    def test_request_larger_than_limit(self) -> None:
        with pytest.raises(ConfigurationError):
            SlidingWindow(limit=2, window_size=1.0).try_acquire(3)


class TestFactory:
    def test_token_bucket_from_kwargs(self) -> None:
        limiter = create_limiter(policy="token-bucket", rate=5, capacity=10, name="search")
        assert isinstance(limiter, TokenBucket)
        assert (limiter.rate, limiter.capacity, limiter.name) == (5.0, 10, "search")

    def test_policy_spelling_is_normalized(self) -> None:
        limiter = create_limiter(RateLimitConfig(policy="SLIDING_WINDOW", limit=3, window_size=2.0))
        assert isinstance(limiter, SlidingWindow)
        assert limiter.stats()["policy"] == "sliding-window"

    def test_missing_policy_fields(self) -> None:
        with pytest.raises(ConfigurationError, match="requires rate"):
            RateLimitConfig(policy="token-bucket", capacity=3)
        with pytest.raises(ConfigurationError):
            create_limiter(policy="sliding-window", limit=3)

    def test_config_and_kwargs_conflict(self) -> None:
        config = RateLimitConfig(policy="token-bucket", rate=1, capacity=1)
        with pytest.raises(TypeError, match="not both"):
            create_limiter(config, rate=50)

    def test_unknown_policy(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(policy="leaky-bucket", rate=1, capacity=1)

    def test_from_settings(self) -> None:
        config = RateLimitConfig.from_settings(FlowgateSettings(), name="defaults")
        assert config.policy == "token-bucket"
        limiter = create_limiter(config)
        assert isinstance(limiter, TokenBucket)
        assert limiter.name == "defaults"

    @pytest.mark.asyncio
    async def test_rate_limited_decorator(self, clock: FakeClock) -> None:
        bucket = TokenBucket(rate=1, capacity=1, clock=clock, sleep=clock.sleep)

        @rate_limited(bucket)
        async def ping(x: int) -> int:
            return x

        assert await ping(1) == 1
        assert await ping(2) == 2
        assert clock.sleeps == [pytest.approx(1.0)]
        assert bucket.stats()["delayed"] == 1
