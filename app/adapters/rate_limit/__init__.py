"""Rate limiting adapters.

This package keeps the fixed-window counter behind a small interface so the
service can start with an in-memory store and later migrate to Redis or
another shared backend without changing callers.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    LimitDecision,
    RateLimitConfig,
    RateLimitEntry,
)
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore

__all__ = [
    "AbstractRateLimitStore",
    "InMemoryRateLimitStore",
    "LimitDecision",
    "RateLimitConfig",
    "RateLimitEntry",
]
