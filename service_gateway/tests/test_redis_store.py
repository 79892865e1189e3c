"""
Unit tests for the Redis-backed store.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from service_gateway.app.caching import RedisStore, Store
from service_gateway.app.caching.redis_store import INCREMENT_SCRIPT
from shared.circuit_breaker import CircuitBreaker
from shared.errors import StoreUnavailable


class TestRedisStore:
    """Test cases for RedisStore."""

    @pytest.fixture
    def increment_script(self):
        return AsyncMock(return_value=1)

    @pytest.fixture
    def mock_client(self, increment_script):
        client = MagicMock()
        client.register_script = MagicMock(return_value=increment_script)
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.pttl = AsyncMock(return_value=-2)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self, mock_client):
        return RedisStore(mock_client, key_prefix="tatakai:", timeout=0.05)

    def test_satisfies_store_protocol(self, store):
        assert isinstance(store, Store)

    def test_registers_increment_script(self, store, mock_client):
        mock_client.register_script.assert_called_once_with(INCREMENT_SCRIPT)

    @pytest.mark.asyncio
    async def test_get_uses_key_prefix(self, store, mock_client):
        mock_client.get.return_value = b"payload"

        assert await store.get("cache:GET:/x") == b"payload"
        mock_client.get.assert_awaited_once_with("tatakai:cache:GET:/x")

    @pytest.mark.asyncio
    async def test_set_converts_ttl_to_milliseconds(self, store, mock_client):
        await store.set("k", b"v", 1.5)
        mock_client.set.assert_awaited_once_with("tatakai:k", b"v", px=1500)

    @pytest.mark.asyncio
    async def test_set_with_zero_ttl_deletes(self, store, mock_client):
        await store.set("k", b"v", 0)

        mock_client.set.assert_not_awaited()
        mock_client.delete.assert_awaited_once_with("tatakai:k")

    @pytest.mark.asyncio
    async def test_increment_runs_script_atomically(self, store, increment_script):
        increment_script.return_value = 7

        assert await store.increment("rate_limit:1.2.3.4", 60) == 7
        increment_script.assert_awaited_once_with(keys=["tatakai:rate_limit:1.2.3.4"], args=[60000])

    @pytest.mark.asyncio
    async def test_delete_reports_removal(self, store, mock_client):
        assert await store.delete("k") is True
        mock_client.delete.return_value = 0
        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_ttl(self, store, mock_client):
        mock_client.pttl.return_value = 2500
        assert await store.ttl("k") == pytest.approx(2.5)

        mock_client.pttl.return_value = -2
        assert await store.ttl("k") is None

        mock_client.pttl.return_value = -1
        assert await store.ttl("k") is None

    @pytest.mark.asyncio
    async def test_connection_error_raises_store_unavailable(self, store, mock_client):
        mock_client.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.get("k")

        assert exc_info.value.operation == "get"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self, store, mock_client):
        async def slow_get(key):
            await asyncio.sleep(1)

        mock_client.get = slow_get

        with pytest.raises(StoreUnavailable):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, mock_client):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, name="test")
        store = RedisStore(mock_client, circuit_breaker=breaker)
        mock_client.get.side_effect = RedisConnectionError("down")

        for _ in range(2):
            with pytest.raises(StoreUnavailable):
                await store.get("k")

        with pytest.raises(StoreUnavailable, match="circuit open"):
            await store.get("k")
        assert mock_client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_ping_reports_failure_without_raising(self, store, mock_client):
        assert await store.ping() is True

        mock_client.ping.side_effect = RedisConnectionError("down")
        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, store, mock_client):
        await store.close()
        mock_client.aclose.assert_awaited_once()

    def test_from_url_builds_lazy_client(self):
        store = RedisStore.from_url("redis://localhost:6379/0", key_prefix="p:", timeout=1.0)

        assert store.key_prefix == "p:"
        assert store.timeout == 1.0
