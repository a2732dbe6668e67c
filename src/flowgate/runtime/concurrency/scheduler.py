"""Bounded-concurrency task runner.

Scheduler owns a Semaphore sized ``max_concurrency``. ``submit`` queues
the task on that semaphore synchronously, so waiting tasks are admitted
in submission order (or by priority, ties in submission order, when
``priority_enabled``). The permit is released the moment a task finishes,
which hands the slot to the next waiter.

A task's exception is captured in its TaskHandle as a TaskError; it never
reaches sibling tasks or the scheduler.

Example:
    >>> async with Scheduler(max_concurrency=4, name="crawler") as scheduler:
    ...     handles = [scheduler.submit(lambda u=u: fetch(u)) for u in urls]
    >>> pages = [h.result() for h in handles if not h.exception()]
    >>>
    >>> # Parallel map with settled results
    >>> results = await scheduler.map(fetch, urls)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import itertools
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, TypeVar

from pydantic import Field

from flowgate.foundation.config import GateConfig
from flowgate.foundation.errors import SchedulerClosedError, TaskError
from flowgate.runtime.observability import get_logger

from .sync import Permit, Semaphore
from .task import TaskHandle, TaskState
from .wait import Settled, gather_settled
from .waitqueue import WaitEntry

if TYPE_CHECKING:
    from types import TracebackType

    from flowgate.foundation.config import FlowgateSettings

T = TypeVar("T")
U = TypeVar("U")

TaskFn = Callable[[], Awaitable[T] | T]


class SchedulerConfig(GateConfig):
    """Scheduler construction parameters."""

    max_concurrency: Annotated[int, Field(gt=0, strict=True)]
    priority_enabled: bool = False
    name: str = "scheduler"


@dataclass(slots=True, frozen=True)
class SchedulerStats:
    """Point-in-time scheduler counters."""

    name: str
    max_concurrency: int
    running: int
    queued: int
    submitted: int
    completed: int
    failed: int
    cancelled: int
    closed: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name, "max_concurrency": self.max_concurrency,
            "running": self.running, "queued": self.queued, "submitted": self.submitted,
            "completed": self.completed, "failed": self.failed, "cancelled": self.cancelled,
            "closed": self.closed,
        }


class Scheduler:
    """Runs submitted tasks with at most ``max_concurrency`` executing at once.

    Args:
        max_concurrency: Positive number of concurrently executing tasks
        priority_enabled: Admit waiters by ascending priority instead of FIFO
        name: Identifier used in logs and default task names

    Raises:
        ConfigurationError: If max_concurrency is not a positive integer
    """

    __slots__ = (
        "_config", "_semaphore", "_tasks", "_seq", "_pending", "_running", "_idle", "_closed",
        "_submitted", "_completed", "_failed", "_cancelled", "_log",
    )

    def __init__(self, max_concurrency: int, *, priority_enabled: bool = False, name: str = "scheduler") -> None:
        self._config = SchedulerConfig(
            max_concurrency=max_concurrency, priority_enabled=priority_enabled, name=name,
        )
        self._semaphore = Semaphore(max_concurrency, name=f"{name}:slots", prioritized=priority_enabled)
        self._tasks: set[asyncio.Task[None]] = set()
        self._seq = itertools.count(1)
        self._pending = 0  # submitted but not yet finished
        self._running = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self._submitted = self._completed = self._failed = self._cancelled = 0
        self._log = get_logger("flowgate.scheduler", gate=name)

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> Scheduler:
        return cls(config.max_concurrency, priority_enabled=config.priority_enabled, name=config.name)

    @classmethod
    def from_settings(cls, settings: FlowgateSettings | None = None, *, name: str = "scheduler") -> Scheduler:
        """Build from FLOWGATE_SCHEDULER_* settings."""
        if settings is None:
            from flowgate.foundation.config import get_settings
            settings = get_settings()
        s = settings.scheduler
        return cls(s.max_concurrency, priority_enabled=s.priority_enabled, name=name)

    # ─────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────

    def submit(self, task: TaskFn[T], *, priority: int = 0, name: str | None = None) -> TaskHandle[T]:
        """Queue ``task`` for execution and return its outcome handle.

        ``task`` is a zero-argument callable returning an awaitable (or a
        plain value). Must be called from a running event loop.

        Raises:
            SchedulerClosedError: If drain() has been called
        """
        if self._closed:
            raise SchedulerClosedError(f"Scheduler '{self.name}' is draining; submission rejected")
        if not callable(task):
            raise TypeError(f"task must be callable, got {type(task).__name__}")

        seq = next(self._seq)
        entry = self._semaphore.request(priority=priority if self.priority_enabled else 0)
        handle: TaskHandle[T] = TaskHandle(
            name or f"{self.name}-{seq}", seq, priority, submitted_at=time.monotonic(),
        )
        handle._entry, handle._withdraw = entry, self._semaphore.cancel  # type: ignore[assignment]

        self._submitted += 1
        self._pending += 1
        self._idle.clear()
        runner = asyncio.get_running_loop().create_task(self._run(task, handle, entry), name=handle.name)
        handle._task = runner
        self._tasks.add(runner)
        runner.add_done_callback(functools.partial(self._reap, handle, entry))
        self._log.debug("task submitted", task=handle.name, seq=seq, queued=self._semaphore.waiting)
        return handle

    async def map(self, fn: Callable[[U], Awaitable[T] | T], items: Iterable[U], *,
                  priority: int = 0) -> list[Settled[T]]:
        """Run ``fn(item)`` for every item under this scheduler's bound.

        Returns settled outcomes in input order; failures are rejected
        Settled values holding the TaskError.
        """
        handles = [self.submit(functools.partial(fn, item), priority=priority) for item in items]
        return await gather_settled(*(h.wait() for h in handles))

    async def _run(self, fn: TaskFn[T], handle: TaskHandle[T], entry: WaitEntry[Permit]) -> None:
        try:
            try:
                permit = await self._semaphore.wait(entry)
            except asyncio.CancelledError:
                self._cancelled += 1
                handle._finish_cancelled(time.monotonic())
                self._log.debug("task cancelled before admission", task=handle.name)
                raise

            self._running += 1
            handle._start(time.monotonic())
            self._log.debug("task admitted", task=handle.name, running=self._running,
                            waited_ms=round(permit.waited * 1000, 2))
            try:
                value = fn()
                if inspect.isawaitable(value):
                    value = await value
            except asyncio.CancelledError:
                self._cancelled += 1
                handle._finish_cancelled(time.monotonic())
                self._log.debug("task cancelled while running", task=handle.name)
                raise
            except Exception as exc:
                error = TaskError(handle.name, exc)
                error.__cause__ = exc
                self._failed += 1
                handle._finish_err(error, time.monotonic())
                self._log.warning("task failed", task=handle.name, error=f"{type(exc).__name__}: {exc}")
            except BaseException as exc:
                error = TaskError(handle.name, exc)
                error.__cause__ = exc
                self._failed += 1
                handle._finish_err(error, time.monotonic())
                self._log.error("task aborted", task=handle.name, error=type(exc).__name__)
                raise
            else:
                self._completed += 1
                handle._finish_ok(value, time.monotonic())
            finally:
                self._running -= 1
                self._semaphore.release(permit)
        finally:
            self._pending -= 1
            if self._pending == 0:
                self._idle.set()

    def _reap(self, handle: TaskHandle[T], entry: WaitEntry[Permit], runner: asyncio.Task[None]) -> None:
        self._tasks.discard(runner)
        if not runner.cancelled():
            runner.exception()  # an abort is already recorded on the handle
        if handle.state is not TaskState.PENDING:
            return
        # Runner was cancelled before its first step, so _run never executed
        self._semaphore._abandon(entry)
        self._cancelled += 1
        handle._finish_cancelled(time.monotonic())
        self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    # ─────────────────────────────────────────────────────────────────
    # Shutdown
    # ─────────────────────────────────────────────────────────────────

    async def drain(self) -> None:
        """Stop accepting submissions and wait for admitted and queued tasks."""
        if not self._closed:
            self._closed = True
            self._log.info("draining", running=self._running, queued=self._semaphore.waiting)
        await self._idle.wait()

    def cancel_all(self) -> int:
        """Cancel every unfinished task. Returns how many were cancelled."""
        return sum(1 for task in list(self._tasks) if task.cancel())

    async def __aenter__(self) -> Scheduler:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is not None:
            self.cancel_all()
        await self.drain()

    # ─────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def max_concurrency(self) -> int:
        return self._config.max_concurrency

    @property
    def priority_enabled(self) -> bool:
        return self._config.priority_enabled

    @property
    def running(self) -> int:
        """Tasks currently executing."""
        return self._running

    @property
    def queued(self) -> int:
        """Tasks waiting for admission."""
        return self._semaphore.waiting

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            name=self.name, max_concurrency=self.max_concurrency, running=self._running,
            queued=self._semaphore.waiting, submitted=self._submitted, completed=self._completed,
            failed=self._failed, cancelled=self._cancelled, closed=self._closed,
        )

    def __repr__(self) -> str:
        return (f"Scheduler(name={self.name!r}, max_concurrency={self.max_concurrency}, "
                f"running={self._running}, queued={self.queued})")


__all__ = ["Scheduler", "SchedulerConfig", "SchedulerStats"]
