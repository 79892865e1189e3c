"""
Rate limiting package for the Gateway.

Holds the fixed-window limiter that enforces per-identity request budgets
on the shared store, active only when the API is hosted publicly.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitDecision, client_identity

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "client_identity",
]
