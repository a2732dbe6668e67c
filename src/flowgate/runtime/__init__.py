"""Runtime - Gates that admit, pace and guard async work.

Contains: concurrency, ratelimit, retry, resilience, observability.
"""

from __future__ import annotations

__all__ = [
    # Concurrency
    "WaitEntry", "WaitQueue", "Permit", "Semaphore", "Mutex", "SemaphoreStats",
    "Scheduler", "SchedulerConfig", "SchedulerStats", "TaskHandle", "TaskState",
    "Settled", "SettledStatus", "gather_settled",
    # Rate limiting
    "RateLimiter", "PacedLimiter", "TokenBucket", "SlidingWindow", "RateLimitConfig",
    "create_limiter", "rate_limited",
    # Retry
    "Backoff", "ExponentialBackoff", "RetryPolicy", "DEFAULT_POLICY", "retry_sync", "retrying",
    # Resilience
    "State", "CircuitBreaker", "BreakerConfig", "CircuitState", "CircuitStats",
    # Observability
    "BoundLogger", "configure_logging", "get_logger", "log_context",
]


def __getattr__(name: str):
    """Lazy imports so each gate family loads only when used."""
    concurrency_attrs = {
        "WaitEntry", "WaitQueue", "Permit", "Semaphore", "Mutex", "SemaphoreStats",
        "Scheduler", "SchedulerConfig", "SchedulerStats", "TaskHandle", "TaskState",
        "Settled", "SettledStatus", "gather_settled",
    }
    if name in concurrency_attrs:
        from . import concurrency
        return getattr(concurrency, name)

    ratelimit_attrs = {
        "RateLimiter", "PacedLimiter", "TokenBucket", "SlidingWindow", "RateLimitConfig",
        "create_limiter", "rate_limited",
    }
    if name in ratelimit_attrs:
        from . import ratelimit
        return getattr(ratelimit, name)

    retry_attrs = {"Backoff", "ExponentialBackoff", "RetryPolicy", "DEFAULT_POLICY", "retry_sync", "retrying"}
    if name in retry_attrs:
        from . import retry
        return getattr(retry, name)

    resilience_attrs = {"State", "CircuitBreaker", "BreakerConfig", "CircuitState", "CircuitStats"}
    if name in resilience_attrs:
        from . import resilience
        return getattr(resilience, name)

    observability_attrs = {"BoundLogger", "configure_logging", "get_logger", "log_context"}
    if name in observability_attrs:
        from . import observability
        return getattr(observability, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
