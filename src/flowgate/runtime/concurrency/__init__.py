"""Concurrency primitives for bounded, ordered admission of async work.

Key Components:
    - WaitQueue / WaitEntry: Ordered pending acquisitions (FIFO or priority)
    - Semaphore / Mutex: Counting and exclusive gates handing out Permits
    - Scheduler: Bounded-concurrency task runner returning TaskHandles
    - Settled / gather_settled: Collect many outcomes without raising

Design:
    - Grant on release: a freed slot goes straight to the oldest waiter
    - Cancellation-safe: withdrawn or timed-out requests never receive a grant
    - Failure isolation: a task's exception only resolves its own handle

Example:
    >>> from flowgate.runtime.concurrency import Scheduler, Semaphore
    >>>
    >>> pool = Semaphore(2)
    >>> async with pool.hold():
    ...     await use_connection()
    >>>
    >>> async with Scheduler(max_concurrency=8) as scheduler:
    ...     handle = scheduler.submit(fetch_report)
    >>> handle.result()
"""

from __future__ import annotations

from .scheduler import Scheduler, SchedulerConfig, SchedulerStats
from .sync import Mutex, Permit, Semaphore, SemaphoreStats
from .task import TaskHandle, TaskState, current_task
from .wait import Settled, SettledStatus, gather_settled
from .waitqueue import WaitEntry, WaitQueue

__all__ = [
    # Wait structures
    "WaitEntry",
    "WaitQueue",
    # Gates
    "Permit",
    "Semaphore",
    "Mutex",
    "SemaphoreStats",
    # Scheduling
    "Scheduler",
    "SchedulerConfig",
    "SchedulerStats",
    "TaskHandle",
    "TaskState",
    "current_task",
    # Settled results
    "Settled",
    "SettledStatus",
    "gather_settled",
]
