"""
Key/value store abstraction shared by the response cache and the rate limiter.

Two backends satisfy the ``Store`` protocol:

- ``MemoryStore``: bounded LRU map inside the process (default)
- ``RedisStore``: shared remote store, required when several gateway
  replicas must observe the same counters and cache entries

The backend is chosen once, at startup, by ``create_store``.
"""

from typing import Optional, Protocol, runtime_checkable

from shared.config import BaseConfig
from shared.logging import get_logger

from .memory_store import MemoryStore
from .redis_store import RedisStore


@runtime_checkable
class Store(Protocol):
    """Protocol for cache/rate-limit storage backends.

    TTLs are expressed in seconds (floats allowed). Remote backends raise
    ``shared.errors.StoreUnavailable`` when unreachable or timed out.
    """

    async def get(self, key: str) -> Optional[bytes]:
        """Return the value for ``key`` or None when absent or expired."""
        ...

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        ...

    async def increment(self, key: str, ttl: float) -> int:
        """Atomically add one to the counter at ``key`` and return the new count.

        A missing or expired counter starts at 1 and expires ``ttl`` seconds
        later; incrementing an existing counter does not extend its lifetime.
        """
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry was removed."""
        ...

    async def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of ``key`` in seconds, None when absent."""
        ...

    async def ping(self) -> bool:
        """Check if the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        ...


def create_store(config: BaseConfig) -> Store:
    """Select the store backend from configuration.

    A configured ``REDIS_URL`` selects the remote store exclusively; without
    one the gateway falls back to the in-process LRU store. There is no
    startup probe: a remote store that is down degrades per call.
    """
    logger = get_logger("gateway.store")

    if config.redis_url:
        logger.info("Using remote store", backend="redis")
        return RedisStore.from_url(
            config.redis_url,
            key_prefix=config.redis_key_prefix,
            timeout=config.redis_timeout_seconds,
        )

    logger.info("Using in-process store", backend="memory", max_entries=config.cache_max_entries)
    return MemoryStore(max_entries=config.cache_max_entries)


def create_counter_store(config: BaseConfig, cache_store: Store) -> Store:
    """Select the store that holds rate-limit counters.

    Redis keeps counters next to cached responses under separate keys and
    never evicts them early. In process, counters get their own unbounded
    store so cache LRU eviction cannot reset a client's window.
    """
    if config.redis_url:
        return cache_store
    return MemoryStore(max_entries=None)
