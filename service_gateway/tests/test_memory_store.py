"""
Unit tests for the in-process LRU store.
"""

import pytest

from service_gateway.app.caching import MemoryStore, Store


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestMemoryStore:
    """Test cases for MemoryStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return MemoryStore(max_entries=3, clock=clock)

    def test_satisfies_store_protocol(self, store):
        assert isinstance(store, Store)

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            MemoryStore(max_entries=0)

    @pytest.mark.asyncio
    async def test_unbounded_store_only_drops_expired(self, clock):
        store = MemoryStore(max_entries=None, clock=clock)

        for index in range(50):
            await store.increment(f"rate_limit:client-{index}", 10)
        assert len(store) == 50
        assert await store.get("rate_limit:client-0") == b"1"

        clock.advance(10)
        assert store.sweep() == 50

    @pytest.mark.asyncio
    async def test_get_missing_key(self, store):
        assert await store.get("absent") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("k", b"value", 10)
        assert await store.get("k") == b"value"

    @pytest.mark.asyncio
    async def test_entry_expires_at_ttl(self, store, clock):
        await store.set("k", b"value", 10)

        clock.advance(9.9)
        assert await store.get("k") == b"value"

        clock.advance(0.1)
        assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_set_overwrites_and_resets_ttl(self, store, clock):
        await store.set("k", b"old", 5)
        clock.advance(4)
        await store.set("k", b"new", 5)
        clock.advance(4)
        assert await store.get("k") == b"new"

    @pytest.mark.asyncio
    async def test_non_positive_ttl_deletes(self, store):
        await store.set("k", b"value", 10)
        await store.set("k", b"other", 0)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self, store):
        await store.set("a", b"1", 60)
        await store.set("b", b"2", 60)
        await store.set("c", b"3", 60)

        # Touch "a" so "b" becomes the eviction candidate
        await store.get("a")
        await store.set("d", b"4", 60)

        assert len(store) == 3
        assert await store.get("b") is None
        assert await store.get("a") == b"1"
        assert await store.get("c") == b"3"
        assert await store.get("d") == b"4"

    @pytest.mark.asyncio
    async def test_increment_creates_counter(self, store):
        assert await store.increment("counter", 60) == 1
        assert await store.increment("counter", 60) == 2
        assert await store.get("counter") == b"2"

    @pytest.mark.asyncio
    async def test_increment_keeps_original_expiry(self, store, clock):
        await store.increment("counter", 60)
        clock.advance(50)
        await store.increment("counter", 60)

        assert await store.ttl("counter") == pytest.approx(10)

        clock.advance(10)
        assert await store.increment("counter", 60) == 1
        assert await store.ttl("counter") == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("k", b"value", 10)
        assert await store.delete("k") is True
        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_ttl_of_missing_key(self, store):
        assert await store.ttl("absent") is None

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, store, clock):
        await store.set("short", b"1", 5)
        await store.set("long", b"2", 50)
        clock.advance(10)

        assert store.sweep() == 1
        assert len(store) == 1
        assert await store.get("long") == b"2"

    @pytest.mark.asyncio
    async def test_ping_and_close(self, store):
        await store.set("k", b"value", 10)
        assert await store.ping() is True

        await store.close()
        assert len(store) == 0
