"""
Gateway response cache: TTL policy, hit/miss handling and store degradation.
"""

from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from shared.errors import StoreUnavailable
from shared.logging import get_logger

from .models import CachedResponse, CacheRequest, CacheResolution
from .policy import RoutePolicyTable, build_cache_key
from .single_flight import SingleFlight
from .store import Store

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


Handler = Callable[[], Awaitable[CachedResponse]]


class CacheManager:
    """Resolve requests through the store, calling the route handler on a miss.

    - Only GET/HEAD are eligible; other methods never touch the store.
    - A hit is returned verbatim and the handler is not called.
    - A miss calls the handler once and stores the result only if it is 2xx.
    - Store failures never fail the request: a failed read is a miss, a
      failed write is logged and dropped.

    Without ``single_flight`` concurrent misses for one key each call the
    handler and each write the store (last write wins).
    """

    def __init__(
        self,
        store: Store,
        policies: RoutePolicyTable,
        *,
        metrics: Optional["MetricsCollector"] = None,
        single_flight: bool = False,
    ):
        self.store = store
        self.policies = policies
        self.metrics = metrics
        self.logger = get_logger("gateway.cache_manager")
        self._single_flight: Optional[SingleFlight[CachedResponse]] = SingleFlight() if single_flight else None

    async def resolve(self, request: CacheRequest, handler: Handler) -> CacheResolution:
        """Serve ``request`` from the store or from ``handler``."""
        if not request.is_idempotent:
            self._count("cache_bypass_total", reason="method")
            return CacheResolution(value=await handler(), served_from_cache=False, ttl=0, status="BYPASS")

        policy = self.policies.match(request.path)
        ttl = policy.ttl_seconds if policy else self.policies.default_ttl
        route = policy.path_prefix if policy else "default"

        if ttl == 0:
            self._count("cache_bypass_total", reason="ttl")
            return CacheResolution(value=await handler(), served_from_cache=False, ttl=0, status="BYPASS")

        key = build_cache_key(request)
        cached = await self._safe_get(key)
        if cached is not None:
            self._count("cache_hits_total", route=route)
            return CacheResolution(value=cached, served_from_cache=True, ttl=ttl, status="HIT")

        self._count("cache_misses_total", route=route)
        if self._single_flight is not None:
            value = await self._single_flight.run(key, lambda: self._fetch_and_store(key, ttl, handler))
        else:
            value = await self._fetch_and_store(key, ttl, handler)

        # Uncached errors must not be kept by downstream caches either
        return CacheResolution(
            value=value,
            served_from_cache=False,
            ttl=ttl if value.is_success else 0,
            status="MISS",
        )

    async def invalidate(self, request: CacheRequest) -> bool:
        """Drop the stored entry for ``request``, if any."""
        try:
            return await self.store.delete(build_cache_key(request))
        except StoreUnavailable as exc:
            self._store_error("delete", exc)
            return False

    async def _fetch_and_store(self, key: str, ttl: int, handler: Handler) -> CachedResponse:
        value = await handler()
        if value.is_success:
            await self._safe_set(key, value, ttl)
        else:
            self.logger.debug("Not caching unsuccessful response", key=key, status_code=value.status_code)
        return value

    async def _safe_get(self, key: str) -> Optional[CachedResponse]:
        """Read an entry, treating store failures and corrupt entries as a miss."""
        try:
            raw = await self.store.get(key)
        except StoreUnavailable as exc:
            self._store_error("get", exc)
            return None

        if raw is None:
            return None

        try:
            return CachedResponse.from_bytes(raw)
        except ValueError as exc:
            self.logger.warning("Discarding malformed cache entry", key=key, error=str(exc))
            try:
                await self.store.delete(key)
            except StoreUnavailable as delete_exc:
                self._store_error("delete", delete_exc)
            return None

    async def _safe_set(self, key: str, value: CachedResponse, ttl: int) -> None:
        try:
            await self.store.set(key, value.to_bytes(), ttl)
            self.logger.debug("Cached response", key=key, ttl=ttl)
        except StoreUnavailable as exc:
            self._store_error("set", exc)

    def _store_error(self, operation: str, exc: StoreUnavailable) -> None:
        self.logger.warning("Cache store unavailable, serving live", operation=operation, error=exc.message)
        self._count("cache_store_errors_total", operation=operation)

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
