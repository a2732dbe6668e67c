"""Rate limiting: token bucket and sliding window admission.

Both policies pace callers rather than reject them: ``acquire`` suspends
until the request fits, in arrival order, and ``try_acquire`` answers
immediately.
"""

from .base import PacedLimiter, RateLimiter
from .bucket import TokenBucket
from .limiter import RateLimitConfig, create_limiter, rate_limited
from .window import SlidingWindow

__all__ = [
    "PacedLimiter",
    "RateLimitConfig",
    "RateLimiter",
    "SlidingWindow",
    "TokenBucket",
    "create_limiter",
    "rate_limited",
]
