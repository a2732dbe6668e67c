"""Outcomes of many task waits collected without raising.

``Scheduler.map`` and ``gather_settled`` hand back one Settled per input,
so a failed task shows up as data next to its siblings' values.

    >>> outcomes = await gather_settled(handle_a.wait(), handle_b.wait())
    >>> values = [o.unwrap_or(None) for o in outcomes]
    >>> errors = [o.error for o in outcomes if o.is_rejected]
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class SettledStatus(StrEnum):
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class Settled(Generic[T]):
    """A task outcome: ``value`` when it completed, ``error`` when it raised or was cancelled."""

    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def of(cls, outcome: T | BaseException) -> Settled[T]:
        """Classify a ``gather(..., return_exceptions=True)`` slot."""
        if isinstance(outcome, BaseException):
            return cls(error=outcome)
        return cls(value=outcome)

    @property
    def status(self) -> SettledStatus:
        return SettledStatus.REJECTED if self.error is not None else SettledStatus.FULFILLED

    @property
    def is_fulfilled(self) -> bool:
        return self.error is None

    @property
    def is_rejected(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """The value; re-raises the error of a rejected outcome."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        return default if self.error is not None else self.value  # type: ignore[return-value]


async def gather_settled(*aws: Awaitable[T]) -> list[Settled[T]]:
    """Await everything, in input order, and never raise for an input's failure.

    An input that was cancelled settles rejected with its CancelledError.
    Cancelling the gather itself still propagates.
    """
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    return [Settled.of(outcome) for outcome in outcomes]
