"""
Core resilience primitives.

Provides request-shaping helpers shared by every router:
- RateLimiter: process-wide fixed-window limiter with a periodic sweep
"""
from core.resilience.rate_limit import (
    RateLimiter,
    RateLimitInfo,
    RateWindow,
)

__all__ = [
    "RateLimiter",
    "RateLimitInfo",
    "RateWindow",
]
