"""
Fixed-window rate limiter for the Gateway.
"""

import math
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from starlette.requests import Request

from shared.errors import StoreUnavailable
from shared.logging import get_logger

from ..caching.store import Store

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check."""

    allowed: bool
    identity: str
    count: int
    limit: int
    remaining: int
    reset_in_seconds: int
    retry_after: int = 0
    error: Optional[str] = None


class FixedWindowRateLimiter:
    """Count requests per identity in TTL-bounded windows.

    The counter key expires ``window_ms`` after the first request of a
    window; the next request after that creates a fresh counter at 1. Store
    failures fail open.
    """

    def __init__(
        self,
        store: Store,
        max_requests: int,
        window_ms: int,
        *,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")
        self.store = store
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limiter")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    def _make_key(self, identity: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{identity}"

    def _admitted(self, identity: str, count: int, error: Optional[str] = None) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            identity=identity,
            count=count,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_in_seconds=math.ceil(self.window_seconds),
            error=error,
        )

    async def admit(self, identity: str) -> RateLimitDecision:
        """Count one request for ``identity`` and decide whether it may proceed."""
        if not self.enabled:
            return self._admitted(identity, 0)

        key = self._make_key(identity)
        try:
            count = await self.store.increment(key, self.window_seconds)
        except StoreUnavailable as exc:
            self.logger.warning("Rate limit store unavailable, admitting request", identity=identity, error=exc.message)
            if self.metrics:
                self.metrics.increment_counter("cache_store_errors_total", operation="increment")
            return self._admitted(identity, 0, error="store unavailable")

        if count <= self.max_requests:
            return self._admitted(identity, count)

        retry_after = await self._retry_after(key)
        self.logger.info(
            "Rate limit exceeded",
            identity=identity,
            count=count,
            limit=self.max_requests,
            retry_after=retry_after,
        )
        if self.metrics:
            self.metrics.increment_counter("rate_limit_rejections_total")

        return RateLimitDecision(
            allowed=False,
            identity=identity,
            count=count,
            limit=self.max_requests,
            remaining=0,
            reset_in_seconds=retry_after,
            retry_after=retry_after,
        )

    async def _retry_after(self, key: str) -> int:
        """Whole seconds until the current window ends, between 1 and the window length."""
        window = max(1, math.ceil(self.window_seconds))
        try:
            remaining = await self.store.ttl(key)
        except StoreUnavailable:
            remaining = None
        if remaining is None:
            return window
        return min(window, max(1, math.ceil(remaining)))

    async def reset(self, identity: str) -> bool:
        """Clear the counter for ``identity``."""
        try:
            return await self.store.delete(self._make_key(identity))
        except StoreUnavailable as exc:
            self.logger.warning("Rate limit reset failed", identity=identity, error=exc.message)
            return False


def client_identity(request: Request) -> str:
    """Extract the rate-limit identity from the request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"
