"""Rate limiting adapters.

The fixed-window limiter lives here together with the counter stores it runs
on, so the API layer only ever sees ``AbstractRateLimiter``.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision, RateLimitResult
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.adapters.rate_limit.store import (
    AbstractCounterStore,
    CounterRecord,
    InMemoryCounterStore,
    RedisCounterStore,
)

__all__ = [
    "AbstractCounterStore",
    "AbstractRateLimiter",
    "CounterRecord",
    "FixedWindowRateLimiter",
    "InMemoryCounterStore",
    "RateLimitDecision",
    "RateLimitResult",
    "RedisCounterStore",
]
