"""Ordered holder of pending acquisition requests.

A WaitEntry is a suspended acquisition: a future the gate resolves to
resume its waiter, plus the bookkeeping needed to time it out or cancel
it. WaitQueue only orders entries; every policy decision (when to grant,
what to grant) belongs to the gate that owns the queue.

Removal is lazy: ``remove()`` flags the entry and ``pop()`` skips flagged
or already-resolved entries, so cancellation is O(1) for both the FIFO
and the prioritized layouts.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True, eq=False)
class WaitEntry(Generic[T]):
    """A queued acquisition request.

    Attributes:
        future: Resolved by the gate to resume the waiter
        enqueued_at: Clock reading when the request was made
        seq: Monotonic request number (tie-breaker for equal priorities)
        priority: Lower values are granted first in a prioritized queue
        timeout: Deadline in seconds, if one was armed
    """

    future: asyncio.Future[T]
    enqueued_at: float
    seq: int
    priority: int = 0
    timeout: float | None = None
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)
    _queued: bool = field(default=False, repr=False)

    @property
    def pending(self) -> bool:
        """Whether the waiter is still suspended."""
        return not self.future.done()

    @property
    def granted(self) -> bool:
        """Whether the gate resumed this waiter with a value."""
        f = self.future
        return f.done() and not f.cancelled() and f.exception() is None

    @property
    def queued(self) -> bool:
        return self._queued

    def arm(self, delay: float, on_expire: Callable[[WaitEntry[T]], None]) -> None:
        """Schedule ``on_expire(self)`` after ``delay`` seconds on the future's loop."""
        self._timer = self.future.get_loop().call_later(delay, on_expire, self)

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def resume(self, value: T) -> bool:
        """Wake the waiter with ``value``. False if it was already resolved."""
        if self.future.done():
            return False
        self.disarm()
        self.future.set_result(value)
        return True

    def reject(self, exc: BaseException) -> bool:
        """Wake the waiter with an exception. False if it was already resolved."""
        if self.future.done():
            return False
        self.disarm()
        self.future.set_exception(exc)
        return True

    def abandon(self) -> bool:
        """Cancel the waiter's future. False if it was already resolved."""
        self.disarm()
        return self.future.cancel()

    def __await__(self):  # type: ignore[no-untyped-def]
        return self.future.__await__()


class WaitQueue(Generic[T]):
    """FIFO (or priority-then-FIFO) queue of WaitEntry objects.

    Example:
        >>> queue: WaitQueue[int] = WaitQueue()
        >>> queue.push(entry_a); queue.push(entry_b)
        >>> queue.remove(entry_a)
        True
        >>> queue.pop() is entry_b
        True
    """

    __slots__ = ("_prioritized", "_fifo", "_heap", "_live", "_seq")

    def __init__(self, *, prioritized: bool = False) -> None:
        self._prioritized = prioritized
        self._fifo: deque[WaitEntry[T]] = deque()
        self._heap: list[tuple[int, int, WaitEntry[T]]] = []
        self._live = 0
        self._seq = itertools.count()

    @property
    def prioritized(self) -> bool:
        return self._prioritized

    def next_seq(self) -> int:
        """Allocate the next request sequence number."""
        return next(self._seq)

    def push(self, entry: WaitEntry[T]) -> None:
        if entry._queued:
            raise ValueError("entry is already queued")
        entry._queued = True
        self._live += 1
        if self._prioritized:
            heapq.heappush(self._heap, (entry.priority, entry.seq, entry))
        else:
            self._fifo.append(entry)

    def remove(self, entry: WaitEntry[T]) -> bool:
        """Take ``entry`` out of the queue. False if it was not queued."""
        if not entry._queued:
            return False
        entry._queued = False
        self._live -= 1
        return True

    def pop(self) -> WaitEntry[T] | None:
        """Remove and return the next entry whose waiter is still suspended."""
        while (entry := self._take()) is not None:
            if not entry._queued:
                continue  # removed earlier
            entry._queued = False
            self._live -= 1
            if entry.pending:
                return entry
        return None

    def peek(self) -> WaitEntry[T] | None:
        """Return the next grantable entry without removing it."""
        while (entry := self._head()) is not None:
            if entry._queued and entry.pending:
                return entry
            self._take()
            if entry._queued:
                entry._queued = False
                self._live -= 1
        return None

    def _head(self) -> WaitEntry[T] | None:
        if self._prioritized:
            return self._heap[0][2] if self._heap else None
        return self._fifo[0] if self._fifo else None

    def _take(self) -> WaitEntry[T] | None:
        if self._prioritized:
            return heapq.heappop(self._heap)[2] if self._heap else None
        return self._fifo.popleft() if self._fifo else None

    def __len__(self) -> int:
        return self._live

    def __bool__(self) -> bool:
        return self.peek() is not None

    def __iter__(self) -> Iterator[WaitEntry[T]]:
        """Live entries in grant order."""
        if self._prioritized:
            ordered = (e for _, _, e in sorted(self._heap, key=lambda t: (t[0], t[1])))
        else:
            ordered = iter(self._fifo)
        return (e for e in ordered if e._queued and e.pending)

    def __repr__(self) -> str:
        kind = "prioritized" if self._prioritized else "fifo"
        return f"WaitQueue({kind}, waiting={self._live})"
