"""Shared machinery for time-paced admission gates.

Waiters pass through a turnstile Mutex one at a time, in arrival order.
The head waiter sleeps until its request fits, then consumes; nothing is
consumed before the sleep ends, so a cancelled or timed-out waiter leaves
the limiter exactly as it found it.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from flowgate.foundation.errors import ConfigurationError, GateTimeoutError
from flowgate.runtime.concurrency import Mutex
from flowgate.runtime.observability import get_logger


@runtime_checkable
class RateLimiter(Protocol):
    """Protocol for rate limiters."""

    name: str

    async def acquire(self, n: int = 1, *, timeout: float | None = None) -> float:
        """Wait until ``n`` units may proceed; returns seconds waited."""
        ...

    def try_acquire(self, n: int = 1) -> bool:
        """Admit ``n`` units only if possible without waiting."""
        ...

    def available(self) -> float:
        """Units that could be admitted right now."""
        ...


class PacedLimiter(ABC):
    """Base class: FIFO turnstile, deadline handling, logging.

    Subclasses implement ``_max_request``, ``_wait_time`` and ``_consume``.
    """

    __slots__ = ("name", "_clock", "_sleep", "_turnstile", "_log", "_admitted", "_delayed")

    policy: str = "paced"

    def __init__(
        self,
        *,
        name: str,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._turnstile = Mutex(name=f"{name}:turnstile", clock=clock)
        self._log = get_logger("flowgate.ratelimit", gate=name, policy=self.policy)
        self._admitted = self._delayed = 0

    @abstractmethod
    def _max_request(self) -> int:
        """Largest ``n`` a single acquire may ask for."""

    @abstractmethod
    def _wait_time(self, n: int, now: float) -> float:
        """Seconds until ``n`` units fit; 0 when they fit now."""

    @abstractmethod
    def _consume(self, n: int, now: float) -> None:
        """Record admission of ``n`` units at ``now``."""

    def _check(self, n: int) -> None:
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ConfigurationError.invalid("n", n, "must be a positive integer")
        if n > self._max_request():
            raise ConfigurationError.invalid("n", n, f"exceeds the limiter's capacity of {self._max_request()}")

    def try_acquire(self, n: int = 1) -> bool:
        """Admit ``n`` units only if that needs no waiting and nobody is queued."""
        self._check(n)
        if self._turnstile.locked():
            return False
        now = self._clock()
        if self._wait_time(n, now) > 0:
            return False
        self._consume(n, now)
        self._admitted += n
        return True

    async def acquire(self, n: int = 1, *, timeout: float | None = None) -> float:
        """Wait until ``n`` units may proceed, then consume them.

        Returns:
            Seconds spent waiting

        Raises:
            GateTimeoutError: If admission cannot happen within ``timeout``
            ConfigurationError: If ``n`` can never be admitted
        """
        self._check(n)
        start = self._clock()
        deadline = None if timeout is None else start + timeout
        try:
            permit = await self._turnstile.acquire(timeout)
        except GateTimeoutError:
            raise GateTimeoutError(f"acquire on rate limiter '{self.name}'", timeout) from None
        slept = False
        try:
            while True:
                now = self._clock()
                if (wait := self._wait_time(n, now)) <= 0:
                    self._consume(n, now)
                    break
                if deadline is not None and now + wait > deadline:
                    self._log.warning("acquire would exceed deadline", n=n, wait=round(wait, 4), timeout=timeout)
                    raise GateTimeoutError(f"acquire on rate limiter '{self.name}'", timeout)
                await self._sleep(wait)
                slept = True
        finally:
            self._turnstile.release(permit)

        waited = self._clock() - start
        self._admitted += n
        if slept:
            self._delayed += 1
            self._log.debug("admitted after wait", n=n, waited_ms=round(waited * 1000, 2))
        return waited

    @abstractmethod
    def available(self) -> float: ...

    @property
    def waiting(self) -> int:
        """Callers queued behind the head waiter."""
        return self._turnstile.waiting

    def stats(self) -> dict[str, object]:
        return {
            "name": self.name, "policy": self.policy, "available": self.available(),
            "admitted": self._admitted, "delayed": self._delayed, "waiting": self.waiting,
        }
