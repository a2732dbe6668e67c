"""Flowgate - Flow-control primitives for asyncio.

Gates that decide when a unit of async work may run: a bounded scheduler,
semaphores and mutexes with FIFO hand-off, rate limiters that pace callers,
retry with exponential backoff, and a circuit breaker that fails fast.

Quick Start:
    >>> from flowgate import CircuitBreaker, RetryPolicy, Scheduler, TokenBucket, retry
    >>>
    >>> limiter = TokenBucket(rate=10, capacity=10, name="search-api")
    >>> breaker = CircuitBreaker(threshold=3, reset_timeout=30.0, timeout=5.0, name="search-api")
    >>> policy = RetryPolicy(max_attempts=3, base_delay=0.1)
    >>>
    >>> async def fetch(query: str) -> dict:
    ...     await limiter.acquire()
    ...     return await breaker.call(lambda: client.search(query))
    >>>
    >>> async with Scheduler(max_concurrency=4) as scheduler:
    ...     handles = [scheduler.submit(lambda q=q: retry(lambda: fetch(q), policy)) for q in queries]
    >>> results = [h.result() for h in handles if h.exception() is None]

Configuration:
    Defaults come from FLOWGATE_* environment variables (see FlowgateSettings);
    every gate offers ``from_settings()``. Logging is configured with
    ``configure_logging(format="console" | "json" | "none", level=...)``.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Foundation
from .foundation import (
    CircuitOpenError,
    ConfigurationError,
    DoubleReleaseError,
    ErrorCode,
    FlowgateSettings,
    GateConfig,
    GateError,
    GateTimeoutError,
    PermitError,
    SchedulerClosedError,
    TaskError,
    clear_settings_cache,
    get_settings,
)

# Concurrency
from .runtime.concurrency import (
    Mutex,
    Permit,
    Scheduler,
    SchedulerConfig,
    Semaphore,
    Settled,
    TaskHandle,
    TaskState,
    WaitQueue,
    gather_settled,
)

# Observability
from .runtime.observability import configure_logging, get_logger

# Rate limiting
from .runtime.ratelimit import RateLimitConfig, RateLimiter, SlidingWindow, TokenBucket, create_limiter, rate_limited

# Resilience
from .runtime.resilience import BreakerConfig, CircuitBreaker, State

# Retry
from .runtime.retry import ExponentialBackoff, RetryPolicy, retry, retry_sync, retrying

__all__ = [
    "__version__",
    # Errors
    "ErrorCode", "GateError", "ConfigurationError", "GateTimeoutError", "TaskError",
    "CircuitOpenError", "PermitError", "DoubleReleaseError", "SchedulerClosedError",
    # Config
    "FlowgateSettings", "GateConfig", "get_settings", "clear_settings_cache",
    # Concurrency
    "WaitQueue", "Semaphore", "Mutex", "Permit", "Scheduler", "SchedulerConfig",
    "TaskHandle", "TaskState", "Settled", "gather_settled",
    # Rate limiting
    "RateLimiter", "TokenBucket", "SlidingWindow", "RateLimitConfig", "create_limiter", "rate_limited",
    # Retry
    "RetryPolicy", "ExponentialBackoff", "retry", "retry_sync", "retrying",
    # Resilience
    "State", "CircuitBreaker", "BreakerConfig",
    # Observability
    "configure_logging", "get_logger",
]
