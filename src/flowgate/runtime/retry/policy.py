"""Retry policy configuration and execution.

RetryPolicy is stateless configuration; each ``retry()`` call keeps its
own attempt counter. Delays grow as ``base_delay * factor^(attempt-1)``,
capped at ``max_delay``, optionally jittered.

Example:
    >>> policy = RetryPolicy(max_attempts=4, base_delay=0.2, jitter=False,
    ...                      should_retry=lambda exc: isinstance(exc, ConnectionError))
    >>> body = await retry(lambda: client.get("/health"), policy)
    >>>
    >>> @retrying(policy)
    ... async def fetch(url: str) -> bytes: ...
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Annotated, ParamSpec, TypeVar

from pydantic import ConfigDict, Field, PositiveFloat, computed_field, model_validator

from flowgate.foundation.config import GateConfig

from .backoff import ExponentialBackoff

if TYPE_CHECKING:
    from flowgate.foundation.config import FlowgateSettings

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger("flowgate.retry")


def _always(_: BaseException) -> bool:
    return True


class RetryPolicy(GateConfig):
    """Configurable retry policy.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay: Delay before the first retry in seconds (> 0)
        max_delay: Delay cap in seconds (>= base_delay)
        factor: Exponential growth factor (>= 1)
        jitter: Scale each delay by a uniform factor in [0.5, 1.5)
        should_retry: Predicate deciding whether an exception is retryable
        on_retry: Optional callback ``(attempt, exc, delay)`` before each sleep

    Raises:
        ConfigurationError: If any parameter is out of range
    """

    model_config = ConfigDict(
        json_schema_extra={
            "title": "RetryPolicy",
            "description": "Attempt budget and backoff schedule for a retried operation",
            "examples": [{"max_attempts": 3, "base_delay": 0.1, "max_delay": 5.0, "factor": 2.0}],
        },
    )

    max_attempts: Annotated[int, Field(ge=1)] = 3
    base_delay: PositiveFloat = 0.1
    max_delay: PositiveFloat = 30.0
    factor: Annotated[float, Field(ge=1.0)] = 2.0
    jitter: bool = True
    should_retry: Callable[[BaseException], bool] = Field(default=_always, exclude=True, repr=False)
    on_retry: Callable[[int, BaseException, float], None] | None = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _check_delays(self) -> RetryPolicy:
        if self.max_delay < self.base_delay:
            raise ValueError(f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})")
        return self

    @classmethod
    def from_settings(cls, settings: FlowgateSettings | None = None, **overrides: object) -> RetryPolicy:
        """Build from FLOWGATE_RETRY_* settings; keyword overrides win."""
        if settings is None:
            from flowgate.foundation.config import get_settings
            settings = get_settings()
        return cls(**{**settings.retry.model_dump(), **overrides})

    @computed_field
    @property
    def is_disabled(self) -> bool:
        """A single attempt: failures propagate immediately."""
        return self.max_attempts == 1

    @property
    def backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(self.base_delay, self.max_delay, self.factor, self.jitter)

    def delay_for(self, attempt: int) -> float:
        """Delay after the failed ``attempt`` (1-indexed) before the next one."""
        return self.backoff.delay(attempt - 1)

    def allows_retry(self, exc: BaseException, attempt: int) -> bool:
        """Whether another attempt follows a failure on ``attempt`` (1-indexed)."""
        return attempt < self.max_attempts and self.should_retry(exc)


DEFAULT_POLICY = RetryPolicy()


def _give_up(exc: BaseException, attempt: int, policy: RetryPolicy, name: str) -> None:
    exc.add_note(f"[{name}] gave up after attempt {attempt}/{policy.max_attempts}")
    logger.warning(f"[{name}] Giving up after attempt {attempt}/{policy.max_attempts}: {type(exc).__name__}: {exc}")


async def retry(
    operation: Callable[[], Awaitable[T] | T],
    policy: RetryPolicy | None = None,
    *,
    name: str = "operation",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Execute an async operation under a retry policy.

    Returns the first successful result. The final failure (or the first
    one ``should_retry`` rejects) propagates unchanged, with a note naming
    the attempt it gave up on. Cancellation is never retried.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy: Retry configuration (default: RetryPolicy())
        name: Label for logs
        sleep: Suspension used between attempts
    """
    policy = policy or DEFAULT_POLICY
    attempt = 1
    while True:
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[return-value]
        except Exception as exc:
            if not policy.allows_retry(exc, attempt):
                _give_up(exc, attempt, policy, name)
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                f"[{name}] Retry {attempt}/{policy.max_attempts - 1} "
                f"after {delay:.3f}s ({type(exc).__name__}: {exc})"
            )
            if policy.on_retry:
                policy.on_retry(attempt, exc, delay)
        await sleep(delay)
        attempt += 1


def retry_sync(
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    name: str = "operation",
    sleep: Callable[[float], object] = time.sleep,
) -> T:
    """Execute a blocking operation under a retry policy.

    Synchronous version of retry() for non-async callers.
    """
    policy = policy or DEFAULT_POLICY
    attempt = 1
    while True:
        try:
            return operation()
        except Exception as exc:
            if not policy.allows_retry(exc, attempt):
                _give_up(exc, attempt, policy, name)
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                f"[{name}] Retry {attempt}/{policy.max_attempts - 1} "
                f"after {delay:.3f}s ({type(exc).__name__}: {exc})"
            )
            if policy.on_retry:
                policy.on_retry(attempt, exc, delay)
        sleep(delay)
        attempt += 1


def retrying(policy: RetryPolicy | None = None) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator applying retry() (or retry_sync() for plain functions)."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        name = func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return retry_sync(lambda: func(*args, **kwargs), policy, name=name)

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await retry(lambda: func(*args, **kwargs), policy, name=name)  # type: ignore[return-value]

        return async_wrapper if inspect.iscoroutinefunction(func) else wrapper  # type: ignore[return-value]

    return decorator
