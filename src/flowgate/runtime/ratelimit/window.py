"""Sliding window limiter.

Keeps the admission timestamp of every unit inside the trailing window.
A stamp ages out once ``window_size`` seconds have fully elapsed, so at
most ``limit`` units are admitted in any window of that length.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable

from flowgate.foundation.errors import ConfigurationError

from .base import PacedLimiter


class SlidingWindow(PacedLimiter):
    """At most ``limit`` units in any trailing ``window_size`` seconds.

    Raises:
        ConfigurationError: If limit or window_size is out of range
    """

    __slots__ = ("limit", "window_size", "_stamps")

    policy = "sliding-window"

    def __init__(
        self,
        limit: int,
        window_size: float,
        *,
        name: str = "sliding-window",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError.invalid("limit", limit, "must be a positive integer")
        if isinstance(window_size, bool) or not isinstance(window_size, (int, float)) or window_size <= 0:
            raise ConfigurationError.invalid("window_size", window_size, "must be a positive number")
        super().__init__(name=name, clock=clock, sleep=sleep)
        self.limit = limit
        self.window_size = float(window_size)
        self._stamps: deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_size
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def _max_request(self) -> int:
        return self.limit

    def _wait_time(self, n: int, now: float) -> float:
        self._prune(now)
        excess = len(self._stamps) + n - self.limit
        if excess <= 0:
            return 0.0
        # the excess-th oldest stamp must age out before n more fit
        return max(0.0, self._stamps[excess - 1] + self.window_size - now)

    def _consume(self, n: int, now: float) -> None:
        self._prune(now)
        self._stamps.extend([now] * n)

    def available(self) -> float:
        """Units admissible right now."""
        self._prune(self._clock())
        return float(self.limit - len(self._stamps))

    def __repr__(self) -> str:
        return f"SlidingWindow(name={self.name!r}, limit={self.limit}, window_size={self.window_size})"
