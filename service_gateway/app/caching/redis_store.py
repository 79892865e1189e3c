"""
Redis-backed store shared across gateway replicas.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import StoreUnavailable
from shared.logging import get_logger


# INCR and set the expiry only when the counter was just created, in one
# server-side step. A counter that somehow lost its TTL gets one back.
INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 or redis.call('PTTL', KEYS[1]) == -1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return count
"""


class RedisStore:
    """Store backend over ``redis.asyncio``.

    Every call is bounded by ``timeout`` and guarded by a circuit breaker;
    connection errors, timeouts and an open breaker all surface as
    ``StoreUnavailable``. No local lock is held across a remote call.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "",
        timeout: float = 2.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = client
        self.key_prefix = key_prefix
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=10.0,
            name="redis_store",
        )
        self._increment_script = client.register_script(INCREMENT_SCRIPT)
        self.logger = get_logger("gateway.redis_store")

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "", timeout: float = 2.0) -> "RedisStore":
        """Create a store with a lazily-connecting client."""
        client = redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=False,
        )
        return cls(client, key_prefix=key_prefix, timeout=timeout)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _bounded(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)

    async def _execute(self, operation: str, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        try:
            return await self.circuit_breaker.call(self._bounded, func, *args, **kwargs)
        except CircuitBreakerOpenException as exc:
            raise StoreUnavailable(operation, "circuit open") from exc
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            self.logger.warning("Redis call failed", operation=operation, error=str(exc) or type(exc).__name__)
            raise StoreUnavailable(operation, str(exc) or type(exc).__name__) from exc

    async def get(self, key: str) -> Optional[bytes]:
        return await self._execute("get", self._client.get, self._key(key))

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        if ttl <= 0:
            await self.delete(key)
            return
        await self._execute("set", self._client.set, self._key(key), value, px=max(1, int(ttl * 1000)))

    async def increment(self, key: str, ttl: float) -> int:
        count = await self._execute(
            "increment",
            self._increment_script,
            keys=[self._key(key)],
            args=[max(1, int(ttl * 1000))],
        )
        return int(count)

    async def delete(self, key: str) -> bool:
        removed = await self._execute("delete", self._client.delete, self._key(key))
        return bool(removed)

    async def ttl(self, key: str) -> Optional[float]:
        remaining_ms = await self._execute("ttl", self._client.pttl, self._key(key))
        # -2: missing, -1: no expiry
        if remaining_ms is None or remaining_ms < 0:
            return None
        return remaining_ms / 1000.0

    async def ping(self) -> bool:
        try:
            return bool(await self._execute("ping", self._client.ping))
        except StoreUnavailable:
            return False

    async def close(self) -> None:
        await self._client.aclose()
