"""Rate limiter configuration and construction.

Example:
    >>> limiter = create_limiter(policy="token-bucket", rate=5, capacity=10, name="github")
    >>> await limiter.acquire()
    >>>
    >>> @rate_limited(limiter)
    ... async def call_api(path: str) -> dict: ...
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Annotated, Literal, ParamSpec, TypeVar

from pydantic import Field, PositiveFloat, field_validator, model_validator

from flowgate.foundation.config import GateConfig

from .base import PacedLimiter
from .bucket import TokenBucket
from .window import SlidingWindow

if TYPE_CHECKING:
    from flowgate.foundation.config import FlowgateSettings

P = ParamSpec("P")
T = TypeVar("T")

Policy = Literal["token-bucket", "sliding-window"]


class RateLimitConfig(GateConfig):
    """Limiter parameters for either policy.

    Token bucket needs ``rate`` and ``capacity``; sliding window needs
    ``limit`` and ``window_size``.
    """

    policy: Policy = "token-bucket"
    rate: PositiveFloat | None = None
    capacity: Annotated[int, Field(gt=0, strict=True)] | None = None
    limit: Annotated[int, Field(gt=0, strict=True)] | None = None
    window_size: PositiveFloat | None = None
    name: str | None = None

    @field_validator("policy", mode="before")
    @classmethod
    def _normalize_policy(cls, v: object) -> object:
        return v.lower().replace("_", "-") if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_policy_fields(self) -> RateLimitConfig:
        required = ("rate", "capacity") if self.policy == "token-bucket" else ("limit", "window_size")
        if missing := [f for f in required if getattr(self, f) is None]:
            raise ValueError(f"{self.policy} requires {', '.join(missing)}")
        return self

    @classmethod
    def from_settings(cls, settings: FlowgateSettings | None = None, **overrides: object) -> RateLimitConfig:
        """Build from FLOWGATE_RATELIMIT_* settings; keyword overrides win."""
        if settings is None:
            from flowgate.foundation.config import get_settings
            settings = get_settings()
        return cls(**{**settings.rate_limit.model_dump(), **overrides})


def create_limiter(config: RateLimitConfig | None = None, **kwargs: object) -> PacedLimiter:
    """Build the limiter described by ``config`` (or by keyword arguments).

    Raises:
        ConfigurationError: If the parameters do not describe a valid limiter
        TypeError: If both a config and keyword arguments are given
    """
    if config is None:
        config = RateLimitConfig(**kwargs)
    elif kwargs:
        raise TypeError(f"create_limiter() takes a config or keyword arguments, not both (got {sorted(kwargs)})")
    if config.policy == "token-bucket":
        return TokenBucket(config.rate, config.capacity, name=config.name or "token-bucket")  # type: ignore[arg-type]
    return SlidingWindow(config.limit, config.window_size, name=config.name or "sliding-window")  # type: ignore[arg-type]


def rate_limited(limiter: PacedLimiter, n: int = 1) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator acquiring ``n`` units from ``limiter`` before every call."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            await limiter.acquire(n)
            return await func(*args, **kwargs)

        return wrapper

    return decorator
