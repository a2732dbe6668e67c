"""Counting semaphore and mutex with FIFO admission.

Semaphore hands out Permit objects. A release transfers the slot straight
to the oldest waiter, so no concurrent acquire() can steal it between the
release and the waiter resuming. Every mutation of ``available`` and the
wait queue happens synchronously on the event loop, which makes the loop
the single lock guarding each semaphore.

Timeouts are loop timers. The timer callback and ``release()`` cannot
interleave, so whichever runs first decides: a timed-out entry is removed
from the queue before its waiter is rejected, and a grant that landed
before the timer fired is honored.

Example:
    >>> pool = Semaphore(3, name="db")
    >>> async with pool.hold(timeout=1.0) as permit:
    ...     await query(permit)
    >>>
    >>> lock = Mutex(name="ledger")
    >>> async with lock:
    ...     await append_entry()
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from flowgate.foundation.errors import (
    ConfigurationError,
    DoubleReleaseError,
    GateTimeoutError,
    PermitError,
)
from flowgate.runtime.observability import get_logger

from .task import current_task
from .waitqueue import WaitEntry, WaitQueue

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["Permit", "Semaphore", "Mutex", "SemaphoreStats"]


@dataclass(slots=True, eq=False)
class Permit:
    """One unit of semaphore capacity, held until released exactly once.

    Attributes:
        id: Permit number, unique per semaphore
        acquired_at: Clock reading at grant time
        waited: Seconds the holder spent queued
        holder: Task that received the permit
        released: Whether the permit has been returned
    """

    id: int
    semaphore: Semaphore = field(repr=False)
    acquired_at: float
    waited: float = 0.0
    holder: asyncio.Task[object] | None = field(default=None, repr=False)
    released: bool = False

    def release(self) -> None:
        """Return this permit to its semaphore."""
        self.semaphore.release(self)


@dataclass(slots=True, frozen=True)
class SemaphoreStats:
    """Point-in-time usage statistics for a semaphore."""

    name: str
    capacity: int
    available: int
    waiting: int
    total_acquisitions: int
    total_timeouts: int
    total_cancellations: int
    average_hold_time: float
    max_hold_time: float

    @property
    def utilization(self) -> float:
        """Current utilization as percentage."""
        return ((self.capacity - self.available) / self.capacity) * 100

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "available": self.available,
            "waiting": self.waiting,
            "utilization_percent": self.utilization,
            "total_acquisitions": self.total_acquisitions,
            "total_timeouts": self.total_timeouts,
            "total_cancellations": self.total_cancellations,
            "average_hold_time": self.average_hold_time,
            "max_hold_time": self.max_hold_time,
        }


class Semaphore:
    """Counting admission gate with FIFO (optionally prioritized) waiters.

    Args:
        capacity: Number of permits (must be a positive integer)
        name: Identifier used in logs and errors
        prioritized: Grant waiters by ascending priority, ties in request order
        clock: Monotonic time source

    Raises:
        ConfigurationError: If capacity is not a positive integer
    """

    __slots__ = (
        "name", "_capacity", "_available", "_waiters", "_outstanding", "_clock", "_ids",
        "_acquisitions", "_timeouts", "_cancellations", "_hold_total", "_hold_count", "_hold_max",
        "_log",
    )

    def __init__(
        self,
        capacity: int,
        *,
        name: str = "semaphore",
        prioritized: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ConfigurationError.invalid("capacity", capacity, "must be a positive integer")
        self.name = name
        self._capacity = capacity
        self._available = capacity
        self._waiters: WaitQueue[Permit] = WaitQueue(prioritized=prioritized)
        self._outstanding: dict[int, Permit] = {}
        self._clock = clock
        self._ids = itertools.count(1)
        self._acquisitions = self._timeouts = self._cancellations = 0
        self._hold_total, self._hold_count, self._hold_max = 0.0, 0, 0.0
        self._log = get_logger("flowgate.semaphore", gate=name)

    # ─────────────────────────────────────────────────────────────────
    # Acquisition
    # ─────────────────────────────────────────────────────────────────

    def request(self, timeout: float | None = None, *, priority: int = 0) -> WaitEntry[Permit]:
        """Ask for a permit without suspending.

        Returns a WaitEntry that is already granted when a slot is free and
        nobody is queued ahead, otherwise a queued entry to await via
        ``wait()``. Must be called from a running event loop.
        """
        if timeout is not None and timeout < 0:
            raise ConfigurationError.invalid("timeout", timeout, "must be >= 0")
        loop = asyncio.get_running_loop()
        entry: WaitEntry[Permit] = WaitEntry(
            loop.create_future(), self._clock(), self._waiters.next_seq(), priority, timeout,
        )
        if self._available > 0 and self._waiters.peek() is None:
            self._available -= 1
            entry.resume(self._issue(entry))
            return entry
        self._waiters.push(entry)
        if timeout is not None:
            entry.arm(timeout, self._expire)
        self._log.debug("acquire queued", seq=entry.seq, waiting=len(self._waiters))
        return entry

    async def wait(self, entry: WaitEntry[Permit]) -> Permit:
        """Suspend until ``entry`` is granted, times out or is cancelled.

        Raises:
            GateTimeoutError: If the entry's deadline fired before a grant
            asyncio.CancelledError: If the entry or the calling task was cancelled
        """
        try:
            permit = await entry.future
        except asyncio.CancelledError:
            self._abandon(entry)
            raise
        permit.holder = current_task()
        return permit

    async def acquire(self, timeout: float | None = None, *, priority: int = 0) -> Permit:
        """Acquire a permit, suspending while none is free.

        Raises:
            GateTimeoutError: If ``timeout`` elapses before a slot frees
        """
        return await self.wait(self.request(timeout, priority=priority))

    @asynccontextmanager
    async def hold(self, timeout: float | None = None, *, priority: int = 0) -> AsyncIterator[Permit]:
        """Acquire for the duration of an ``async with`` block."""
        permit = await self.acquire(timeout, priority=priority)
        try:
            yield permit
        finally:
            self.release(permit)

    # ─────────────────────────────────────────────────────────────────
    # Release & cancellation
    # ─────────────────────────────────────────────────────────────────

    def release(self, permit: Permit) -> None:
        """Return a permit, handing its slot to the oldest waiter if any.

        Raises:
            DoubleReleaseError: If the permit was already released
            PermitError: If the permit belongs to another semaphore
        """
        if permit.semaphore is not self:
            raise PermitError(f"Permit {permit.id} does not belong to semaphore '{self.name}'")
        if permit.released:
            raise DoubleReleaseError(f"Permit {permit.id} of semaphore '{self.name}' released twice")
        permit.released = True
        del self._outstanding[permit.id]
        held = self._clock() - permit.acquired_at
        self._hold_total += held
        self._hold_count += 1
        self._hold_max = max(self._hold_max, held)

        if (entry := self._waiters.pop()) is not None:
            # Slot transfer: available is untouched
            entry.resume(self._issue(entry))
            self._log.debug("permit handed off", released=permit.id, seq=entry.seq)
        else:
            self._available += 1

    def cancel(self, entry: WaitEntry[Permit]) -> bool:
        """Withdraw a pending request.

        No effect on ``available``. Returns False (and does nothing) when the
        entry was already granted, timed out or cancelled.
        """
        if not self._waiters.remove(entry):
            return False
        entry.abandon()
        self._cancellations += 1
        self._log.debug("acquire cancelled", seq=entry.seq)
        return True

    def _issue(self, entry: WaitEntry[Permit]) -> Permit:
        now = self._clock()
        permit = Permit(next(self._ids), self, now, waited=now - entry.enqueued_at)
        self._outstanding[permit.id] = permit
        self._acquisitions += 1
        return permit

    def _expire(self, entry: WaitEntry[Permit]) -> None:
        if not self._waiters.remove(entry):
            return  # granted or cancelled first
        if entry.reject(GateTimeoutError(f"acquire on semaphore '{self.name}'", entry.timeout)):
            self._timeouts += 1
            self._log.warning("acquire timed out", seq=entry.seq, timeout=entry.timeout)

    def _abandon(self, entry: WaitEntry[Permit]) -> None:
        """Clean up after the waiting task was cancelled."""
        if entry.granted:
            # Grant landed before the cancellation was delivered
            self.release(entry.future.result())
        elif self._waiters.remove(entry):
            self._cancellations += 1
        entry.abandon()

    # ─────────────────────────────────────────────────────────────────
    # Observability
    # ─────────────────────────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        return self._available

    @property
    def waiting(self) -> int:
        """Number of queued requests."""
        return len(self._waiters)

    @property
    def outstanding(self) -> int:
        """Number of granted, un-released permits."""
        return len(self._outstanding)

    @property
    def prioritized(self) -> bool:
        return self._waiters.prioritized

    def locked(self) -> bool:
        """Check if no permit is free."""
        return self._available == 0

    def stats(self) -> SemaphoreStats:
        avg = self._hold_total / self._hold_count if self._hold_count else 0.0
        return SemaphoreStats(
            name=self.name,
            capacity=self._capacity,
            available=self._available,
            waiting=len(self._waiters),
            total_acquisitions=self._acquisitions,
            total_timeouts=self._timeouts,
            total_cancellations=self._cancellations,
            average_hold_time=avg,
            max_hold_time=self._hold_max,
        )

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(name={self.name!r}, capacity={self._capacity}, "
                f"available={self._available}, waiting={len(self._waiters)})")


class Mutex(Semaphore):
    """Mutual exclusion lock: a Semaphore with capacity 1.

    Only the holding task may release it, and a second release of the same
    permit is reported as DoubleReleaseError.

    Example:
        >>> lock = Mutex()
        >>> async with lock:
        ...     ...
        >>> permit = await lock.acquire(timeout=0.5)
        >>> lock.release(permit)
    """

    __slots__ = ("_held", "_last_released")

    def __init__(self, *, name: str = "mutex", clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(1, name=name, clock=clock)
        self._held: Permit | None = None
        self._last_released: Permit | None = None

    async def wait(self, entry: WaitEntry[Permit]) -> Permit:
        permit = await super().wait(entry)
        self._held = permit
        return permit

    def release(self, permit: Permit | None = None) -> None:
        """Release the lock. Defaults to the currently held permit.

        Without ``permit``, a caller whose own last permit is already
        released gets DoubleReleaseError rather than an ownership error.

        Raises:
            PermitError: If the mutex is not locked or the caller is not the holder
            DoubleReleaseError: If ``permit`` (or the caller's last permit) was already released
        """
        if permit is None:
            last, caller = self._last_released, current_task()
            if self._held is not None and self._held.holder is caller:
                permit = self._held
            elif last is not None and last.holder is caller:
                raise DoubleReleaseError(f"Permit {last.id} of mutex '{self.name}' released twice")
            elif self._held is not None:
                permit = self._held
            elif self.locked():
                raise PermitError(f"Mutex '{self.name}' can only be released by its holder")
            else:
                raise PermitError(f"Mutex '{self.name}' is not locked")
        if permit.released:
            raise DoubleReleaseError(f"Permit {permit.id} of mutex '{self.name}' released twice")
        if permit.holder is not None and permit.holder is not current_task():
            raise PermitError(f"Mutex '{self.name}' can only be released by its holder")
        super().release(permit)
        self._last_released = permit
        if self._held is permit:
            self._held = None

    @property
    def holder(self) -> asyncio.Task[object] | None:
        """Task currently holding the lock."""
        return self._held.holder if self._held is not None else None

    async def __aenter__(self) -> Mutex:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
