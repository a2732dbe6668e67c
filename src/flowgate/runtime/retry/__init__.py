"""Retry with exponential backoff for fallible operations.

Example:
    >>> from flowgate.runtime.retry import RetryPolicy, retry
    >>>
    >>> policy = RetryPolicy(max_attempts=3, base_delay=0.1, factor=2, jitter=False)
    >>> result = await retry(flaky_call, policy)   # sleeps 0.1s, then 0.2s at most
"""

from .backoff import Backoff, ExponentialBackoff
from .policy import DEFAULT_POLICY, RetryPolicy, retry, retry_sync, retrying

__all__ = [
    # Backoff strategies
    "Backoff",
    "ExponentialBackoff",
    # Policy
    "RetryPolicy",
    "DEFAULT_POLICY",
    # Execution
    "retry",
    "retry_sync",
    "retrying",
]
