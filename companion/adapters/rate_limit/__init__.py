"""Rate limiting adapters.

The HTTP layer depends on ``AbstractRateLimiter`` only, so the in-memory
store can later be replaced by a shared one (e.g. Redis) without touching
routes.
"""

from companion.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from companion.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
