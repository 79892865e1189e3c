"""
In-process bounded LRU store with lazy TTL expiry.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple, Union

from shared.logging import get_logger


StoredValue = Union[bytes, int]


class MemoryStore:
    """LRU + TTL map guarded by a single lock.

    Reads promote recency, writes evict the least-recently-used entry once
    ``max_entries`` is exceeded. Expired entries are dropped when touched and
    by ``sweep``. The lock is only held for the map mutation itself.
    With ``max_entries=None`` nothing is evicted and entries only leave
    by expiry, which keeps rate-limit counters intact.
    """

    def __init__(self, max_entries: Optional[int] = 1000, clock: Optional[Callable[[], float]] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, Tuple[float, StoredValue]]" = OrderedDict()
        self._lock = threading.Lock()
        self.logger = get_logger("gateway.memory_store")

    def __len__(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str, now: float) -> Optional[Tuple[float, StoredValue]]:
        """Return the entry for key, removing it if expired. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] <= now:
            del self._entries[key]
            return None
        return entry

    def _put(self, key: str, expires_at: float, value: StoredValue) -> None:
        """Insert and enforce capacity. Caller holds the lock."""
        self._entries[key] = (expires_at, value)
        self._entries.move_to_end(key)
        while self.max_entries is not None and len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.logger.debug("Evicted least-recently-used entry", key=evicted)

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is None:
                return None
            self._entries.move_to_end(key)
            value = entry[1]
        if isinstance(value, int):
            return str(value).encode()
        return value

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        if ttl <= 0:
            await self.delete(key)
            return
        with self._lock:
            self._put(key, self._clock() + ttl, value)

    async def increment(self, key: str, ttl: float) -> int:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                count = 1
                expires_at = now + ttl
            else:
                expires_at, current = entry
                count = int(current) + 1
            self._put(key, expires_at, count)
        return count

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def ttl(self, key: str) -> Optional[float]:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return None
            return entry[0] - now

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            self.logger.debug("Swept expired entries", count=len(expired))
        return len(expired)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        # Ephemeral: nothing to flush
        with self._lock:
            self._entries.clear()
