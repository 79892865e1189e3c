"""
Gateway caching package.

Provides the store abstraction behind the rate limiter and the response
cache, plus the Cache-Control writer used by the request pipeline. Only
idempotent requests are cached, and only successful responses are stored.
"""

from .cache_manager import CacheManager
from .headers import annotate
from .memory_store import MemoryStore
from .models import CachedResponse, CacheRequest, CacheResolution
from .policy import RoutePolicy, RoutePolicyTable, build_cache_key
from .redis_store import RedisStore
from .store import Store, create_counter_store, create_store

__all__ = [
    "CacheManager",
    "CachedResponse",
    "CacheRequest",
    "CacheResolution",
    "MemoryStore",
    "RedisStore",
    "RoutePolicy",
    "RoutePolicyTable",
    "Store",
    "annotate",
    "build_cache_key",
    "create_counter_store",
    "create_store",
]
