"""Outcome handles for scheduled tasks.

A TaskHandle is returned by ``Scheduler.submit``. It reports lifecycle
state, exposes the eventual value or TaskError, and lets the caller
cancel the task whether it is still queued or already running.

Example:
    >>> handle = scheduler.submit(fetch_page)
    >>> handle.state
    <TaskState.PENDING: 'pending'>
    >>> body = await handle          # raises TaskError if fetch_page failed
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from flowgate.foundation.errors import TaskError

if TYPE_CHECKING:
    from .waitqueue import WaitEntry

T = TypeVar("T")


class TaskState(StrEnum):
    """PENDING until admitted, RUNNING while the callable executes, then one of the final three."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_FINAL = frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED})


@dataclass(slots=True, eq=False)
class TaskHandle(Generic[T]):
    """Handle to a submitted task's eventual outcome.

    Attributes:
        name: Task name for logs and errors
        seq: Submission sequence number
        priority: Priority the task was submitted with
        submitted_at / started_at / finished_at: Clock readings
    """

    name: str
    seq: int
    priority: int = 0
    submitted_at: float = 0.0
    started_at: float | None = None
    finished_at: float | None = None
    _state: TaskState = field(default=TaskState.PENDING, repr=False)
    _value: T | None = field(default=None, repr=False)
    _error: TaskError | None = field(default=None, repr=False)
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _entry: WaitEntry[object] | None = field(default=None, repr=False)
    _withdraw: Callable[[WaitEntry[object]], bool] | None = field(default=None, repr=False)
    _task: asyncio.Task[None] | None = field(default=None, repr=False)
    _callbacks: list[Callable[[TaskHandle[T]], object]] = field(default_factory=list, repr=False)

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def done(self) -> bool:
        """True once the state is final."""
        return self._state in _FINAL

    @property
    def cancelled(self) -> bool:
        return self._state == TaskState.CANCELLED

    def result(self) -> T:
        """The value the task produced.

        Raises:
            TaskError: The task raised
            asyncio.CancelledError: The task was cancelled
            RuntimeError: The task has not finished yet
        """
        match self._state:
            case TaskState.COMPLETED:
                return self._value  # type: ignore[return-value]
            case TaskState.FAILED:
                assert self._error is not None
                raise self._error
            case TaskState.CANCELLED:
                raise asyncio.CancelledError(f"Task '{self.name}' was cancelled")
            case _:
                raise RuntimeError(f"Task '{self.name}' is not done")

    def exception(self) -> TaskError | None:
        """Get the task's TaskError, or None if it did not fail."""
        return self._error

    def cancel(self) -> bool:
        """Withdraw a queued task or interrupt a running one.

        A queued task never runs and is CANCELLED on return. A running task
        gets CancelledError at its next await. Returns False for a finished task.
        """
        if self.done:
            return False
        if self._state == TaskState.PENDING and self._entry is not None and self._withdraw is not None:
            if self._withdraw(self._entry):
                self._finish_cancelled(time.monotonic())
                return True
        return self._task.cancel() if self._task is not None else False

    async def wait(self) -> T:
        """Suspend until the task finishes, then behave like ``result()``."""
        await self._done.wait()
        return self.result()

    def __await__(self):  # type: ignore[no-untyped-def]
        return self.wait().__await__()

    def add_done_callback(self, fn: Callable[[TaskHandle[T]], object]) -> None:
        """Call ``fn(handle)`` once the task is done (immediately if it already is)."""
        if self.done:
            fn(self)
        else:
            self._callbacks.append(fn)

    @property
    def elapsed(self) -> float | None:
        """Seconds spent executing, once finished."""
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    # Scheduler-driven transitions

    def _start(self, now: float) -> None:
        self._state, self.started_at, self._entry = TaskState.RUNNING, now, None

    def _finish_ok(self, value: T, now: float) -> None:
        self._value = value
        self._settle(TaskState.COMPLETED, now)

    def _finish_err(self, error: TaskError, now: float) -> None:
        self._error = error
        self._settle(TaskState.FAILED, now)

    def _finish_cancelled(self, now: float) -> None:
        self._settle(TaskState.CANCELLED, now)

    def _settle(self, state: TaskState, now: float) -> None:
        if self.done:
            return
        self._state, self.finished_at, self._entry = state, now, None
        self._done.set()
        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn(self)


def current_task() -> asyncio.Task[object] | None:
    """The asyncio task running this code; None outside a running loop."""
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
