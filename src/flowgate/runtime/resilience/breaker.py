"""Circuit breaker for failing dependencies.

Transitions:
    CLOSED → consecutive failures reach threshold → OPEN
    OPEN → first call at/after next_attempt_at → HALF_OPEN (sole trial call)
    HALF_OPEN → trial succeeds → CLOSED
    HALF_OPEN → trial fails → OPEN

While OPEN (and while a trial is in flight) calls are rejected with
CircuitOpenError without running the operation. A success in CLOSED
resets the failure count, so only consecutive failures open the circuit.

Transitions are synchronous between awaits, so every decision a caller
sees is made atomically with respect to other tasks on the loop.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Annotated, ParamSpec, TypedDict, TypeVar

from pydantic import Field, NonNegativeFloat, PositiveFloat

from flowgate.foundation.config import GateConfig
from flowgate.foundation.errors import CircuitOpenError, GateTimeoutError
from flowgate.runtime.observability import get_logger

if TYPE_CHECKING:
    from flowgate.foundation.config import FlowgateSettings

P = ParamSpec("P")
T = TypeVar("T")


class State(IntEnum):
    """Where the circuit stands. HALF_OPEN means a single trial call is in flight."""
    CLOSED = 0
    OPEN = 1
    HALF_OPEN = 2


class CircuitStats(TypedDict):
    name: str
    state: str
    failure_count: int
    threshold: int
    reset_timeout: float
    retry_after: float | None
    trial_in_flight: bool
    calls: int
    successes: int
    failures: int
    rejected: int


class BreakerConfig(GateConfig):
    """Circuit breaker parameters."""

    threshold: Annotated[int, Field(gt=0, strict=True)] = 5
    reset_timeout: NonNegativeFloat = 30.0
    timeout: PositiveFloat | None = None
    name: str = "breaker"
    excluded: tuple[type[BaseException], ...] = Field(default=(), exclude=True)


@dataclass(slots=True)
class CircuitState:
    """Mutable circuit bookkeeping, owned by one breaker."""
    state: State = State.CLOSED
    failure_count: int = 0
    next_attempt_at: float | None = None
    trial_in_flight: bool = False


class CircuitBreaker:
    """Fail fast against a dependency that keeps failing.

    Args:
        threshold: Consecutive failures before opening (default: 5)
        reset_timeout: Seconds OPEN before a trial call is let through (default: 30)
        timeout: Per-call timeout in seconds; expiry counts as a failure
        name: Identifier used in logs and errors
        excluded: Exception types that propagate without counting as failures
        clock: Monotonic time source

    Raises:
        ConfigurationError: If a parameter is out of range

    Example:
        >>> breaker = CircuitBreaker(threshold=3, reset_timeout=10.0, timeout=2.0, name="billing")
        >>> invoice = await breaker.call(lambda: billing.fetch(invoice_id))
        >>>
        >>> # Guarding a synchronous client by hand
        >>> if not breaker.allow():
        ...     return cached_invoice
        >>> try:
        ...     invoice = billing_client.fetch_sync(invoice_id)
        ... except BillingError:
        ...     breaker.record_failure()
        ...     raise
        >>> breaker.record_success()
    """

    __slots__ = ("_config", "_circuit", "_clock", "_log", "_calls", "_successes", "_failures", "_rejected")

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 30.0,
        timeout: float | None = None,
        *,
        name: str = "breaker",
        excluded: tuple[type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = BreakerConfig(
            threshold=threshold, reset_timeout=reset_timeout, timeout=timeout, name=name, excluded=tuple(excluded),
        )
        self._circuit = CircuitState()
        self._clock = clock
        self._log = get_logger("flowgate.breaker", gate=name)
        self._calls = self._successes = self._failures = self._rejected = 0

    @classmethod
    def from_config(cls, config: BreakerConfig, *, clock: Callable[[], float] = time.monotonic) -> CircuitBreaker:
        return cls(config.threshold, config.reset_timeout, config.timeout,
                   name=config.name, excluded=config.excluded, clock=clock)

    @classmethod
    def from_settings(cls, settings: FlowgateSettings | None = None, *, name: str = "breaker",
                      excluded: tuple[type[BaseException], ...] = ()) -> CircuitBreaker:
        """Build from FLOWGATE_BREAKER_* settings."""
        if settings is None:
            from flowgate.foundation.config import get_settings
            settings = get_settings()
        s = settings.breaker
        return cls(s.threshold, s.reset_timeout, s.timeout, name=name, excluded=excluded)

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    def _transition(self, state: State, **ctx: object) -> None:
        previous, self._circuit.state = self._circuit.state, state
        self._log.info("circuit state changed", previous=previous.name, state=state.name, **ctx)

    def _admit(self) -> bool:
        """Let a call through or raise CircuitOpenError. Returns True for the trial call."""
        circuit = self._circuit
        if circuit.state == State.CLOSED:
            return False
        if circuit.state == State.OPEN and self._clock() >= circuit.next_attempt_at:  # type: ignore[operator]
            circuit.trial_in_flight = True
            self._transition(State.HALF_OPEN)
            return True
        self._rejected += 1
        raise CircuitOpenError(self.name, self.retry_after)

    def _open(self, now: float) -> None:
        self._circuit.next_attempt_at = now + self.reset_timeout
        self._circuit.trial_in_flight = False
        self._transition(State.OPEN, failure_count=self._circuit.failure_count,
                         retry_after=self.reset_timeout)

    def _on_success(self, trial: bool) -> None:
        circuit = self._circuit
        self._successes += 1
        if trial and circuit.state == State.HALF_OPEN:
            circuit.failure_count, circuit.next_attempt_at, circuit.trial_in_flight = 0, None, False
            self._transition(State.CLOSED)
        elif circuit.state == State.CLOSED:
            circuit.failure_count = 0

    def _on_failure(self, exc: BaseException | None, trial: bool) -> None:
        circuit = self._circuit
        self._failures += 1
        if trial and circuit.state == State.HALF_OPEN:
            circuit.failure_count += 1
            self._open(self._clock())
        elif circuit.state == State.CLOSED:
            circuit.failure_count += 1
            if circuit.failure_count >= self.threshold:
                self._open(self._clock())
            elif exc is not None:
                self._log.debug("call failed", failure_count=circuit.failure_count,
                                error=f"{type(exc).__name__}: {exc}")

    def _abandon_trial(self) -> None:
        """Return an unfinished trial to OPEN; its deadline has passed, so the next call trials again."""
        if self._circuit.state == State.HALF_OPEN:
            self._circuit.trial_in_flight = False
            self._transition(State.OPEN, reason="trial abandoned")

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    async def _invoke(self, operation: Callable[[], Awaitable[T] | T]) -> T:
        if self.timeout is None:
            result = operation()
            return await result if inspect.isawaitable(result) else result  # type: ignore[return-value]
        try:
            async with asyncio.timeout(self.timeout) as scope:
                result = operation()
                return await result if inspect.isawaitable(result) else result  # type: ignore[return-value]
        except TimeoutError:
            if scope.expired():
                raise GateTimeoutError(f"call through breaker '{self.name}'", self.timeout) from None
            raise

    async def call(self, operation: Callable[[], Awaitable[T] | T]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not invoked
            GateTimeoutError: If ``timeout`` elapses first (counted as a failure)
        """
        trial = self._admit()
        self._calls += 1
        try:
            result = await self._invoke(operation)
        except asyncio.CancelledError:
            if trial:
                self._abandon_trial()
            raise
        except self._config.excluded:
            if trial:
                self._abandon_trial()
            raise
        except Exception as exc:
            self._on_failure(exc, trial)
            raise
        self._on_success(trial)
        return result

    def protect(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorator routing every call of ``func`` through this breaker."""

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.call(lambda: func(*args, **kwargs))

        return wrapper

    # ─────────────────────────────────────────────────────────────────
    # Manual API
    # ─────────────────────────────────────────────────────────────────

    def allow(self) -> bool:
        """Check if a request should be allowed through.

        Past the OPEN deadline this claims the trial slot, so the caller
        must report the outcome with record_success() or record_failure().
        """
        try:
            self._admit()
        except CircuitOpenError:
            return False
        self._calls += 1
        return True

    def record_success(self) -> None:
        """Record a successful execution."""
        self._on_success(self._circuit.state == State.HALF_OPEN)

    def record_failure(self) -> None:
        """Record a failed execution."""
        self._on_failure(None, self._circuit.state == State.HALF_OPEN)

    def reset(self) -> None:
        """Manually close the circuit and clear the failure count."""
        self._circuit = CircuitState()
        self._log.info("circuit reset")

    # ─────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def threshold(self) -> int:
        return self._config.threshold

    @property
    def reset_timeout(self) -> float:
        return self._config.reset_timeout

    @property
    def timeout(self) -> float | None:
        return self._config.timeout

    @property
    def state(self) -> State:
        """Current state. OPEN stays OPEN until a call arrives after the deadline."""
        return self._circuit.state

    @property
    def failure_count(self) -> int:
        return self._circuit.failure_count

    @property
    def next_attempt_at(self) -> float | None:
        """Clock reading at which the next trial is allowed, or None if not open."""
        return self._circuit.next_attempt_at if self._circuit.state == State.OPEN else None

    @property
    def is_open(self) -> bool:
        return self._circuit.state == State.OPEN

    @property
    def is_closed(self) -> bool:
        return self._circuit.state == State.CLOSED

    @property
    def retry_after(self) -> float | None:
        """Seconds until a trial call is allowed, or None if not open."""
        if self._circuit.state != State.OPEN:
            return None
        return max(0.0, self._circuit.next_attempt_at - self._clock())  # type: ignore[operator]

    def stats(self) -> CircuitStats:
        return {
            "name": self.name, "state": self._circuit.state.name,
            "failure_count": self._circuit.failure_count, "threshold": self.threshold,
            "reset_timeout": self.reset_timeout, "retry_after": self.retry_after,
            "trial_in_flight": self._circuit.trial_in_flight, "calls": self._calls,
            "successes": self._successes, "failures": self._failures, "rejected": self._rejected,
        }

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self._circuit.state.name}, failures={self.failure_count})"
