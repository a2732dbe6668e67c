"""Token bucket limiter.

Tokens refill continuously at ``rate`` per second up to ``capacity``;
each admitted unit spends one. The bucket starts full, so up to
``capacity`` units pass as an initial burst.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from flowgate.foundation.errors import ConfigurationError

from .base import PacedLimiter

# Float refill arithmetic can leave a bucket a hair short of a whole token.
_EPSILON = 1e-9


class TokenBucket(PacedLimiter):
    """Average ``rate`` units per second with bursts of up to ``capacity``.

    Args:
        rate: Refill rate in tokens per second (> 0)
        capacity: Maximum stored tokens (positive int)
        name: Identifier used in logs and errors

    Raises:
        ConfigurationError: If rate or capacity is out of range
    """

    __slots__ = ("rate", "capacity", "_tokens", "_updated")

    policy = "token-bucket"

    def __init__(
        self,
        rate: float,
        capacity: int,
        *,
        name: str = "token-bucket",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate <= 0:
            raise ConfigurationError.invalid("rate", rate, "must be a positive number")
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ConfigurationError.invalid("capacity", capacity, "must be a positive integer")
        super().__init__(name=name, clock=clock, sleep=sleep)
        self.rate = float(rate)
        self.capacity = capacity
        self._tokens = float(capacity)
        self._updated = clock()

    def _refill(self, now: float) -> None:
        if now > self._updated:
            self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
            self._updated = now

    def _max_request(self) -> int:
        return self.capacity

    def _wait_time(self, n: int, now: float) -> float:
        self._refill(now)
        deficit = n - self._tokens
        return 0.0 if deficit <= _EPSILON else deficit / self.rate

    def _consume(self, n: int, now: float) -> None:
        self._refill(now)
        self._tokens = max(0.0, self._tokens - n)

    def available(self) -> float:
        """Tokens currently in the bucket."""
        self._refill(self._clock())
        return self._tokens

    def __repr__(self) -> str:
        return f"TokenBucket(name={self.name!r}, rate={self.rate}, capacity={self.capacity})"
