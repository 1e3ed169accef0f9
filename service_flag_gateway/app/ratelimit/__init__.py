"""
Rate limiting package for the Gateway.

Holds fixed-window limiters (in-process and Redis-backed) and the client key
derivation applied uniformly to every request.
"""

from .fixed_window import (
    ClientKeyResolver,
    FixedWindowRateLimiter,
    RateLimitDecision,
    RedisFixedWindowRateLimiter,
)

__all__ = [
    "ClientKeyResolver",
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RedisFixedWindowRateLimiter",
]
