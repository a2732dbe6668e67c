"""Delay schedules between retry attempts.

Retry indexes passed to ``delay()`` count from 0: the pause after the
first failed attempt is ``delay(0)``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Anything that maps a retry index to a pause in seconds."""

    def delay(self, retry: int) -> float: ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """``min(max_delay, base_delay * factor**retry)``, optionally jittered.

    With ``jitter`` the capped delay is scaled by a uniform factor in
    [0.5, 1.5), which spreads out callers that failed together.

    Attributes:
        base_delay: Pause before the first retry in seconds
        max_delay: Upper bound applied before jitter
        factor: Growth per retry
        jitter: Randomize each delay
        rng: Random source (seed it for reproducible schedules)
    """

    base_delay: float = 0.1
    max_delay: float = 30.0
    factor: float = 2.0
    jitter: bool = True
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def delay(self, retry: int) -> float:
        try:
            capped = min(self.max_delay, self.base_delay * self.factor ** retry)
        except OverflowError:
            capped = self.max_delay
        return capped * (0.5 + self.rng.random()) if self.jitter else capped
