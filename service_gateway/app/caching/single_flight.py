"""
Per-key de-duplication of concurrent cache misses within one process.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one ``factory`` per key at a time; followers share its result.

    The leader's exception is re-raised in every follower. If the leader is
    cancelled, its followers are not: they race for the key again and one of
    them becomes the new leader. The in-flight marker is removed as soon as
    the leader finishes, so the next caller after completion starts a fresh
    call.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, "asyncio.Future[T]"] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        while True:
            existing = self._inflight.get(key)
            if existing is None:
                return await self._lead(key, factory)
            try:
                # shield: a cancelled follower must not cancel the leader's result
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                if not existing.cancelled():
                    raise
                # Leader went away; try again

    async def _lead(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        future: "asyncio.Future[T]" = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Retrieve so an unobserved failure is not logged by the loop
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
