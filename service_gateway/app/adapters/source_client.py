"""
Upstream content source clients for the Gateway.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import NotFoundError, UpstreamFailure
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception


class SourceClient:
    """Forward read requests to one upstream content source.

    Upstream status codes and bodies are passed back untouched; only
    transport failures (connect errors, timeouts) become ``UpstreamFailure``.
    """

    def __init__(self, name: str, base_url: str, *, timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger(f"gateway.source.{name}")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name=f"source_{name}",
        )

    async def fetch(self, path: str, params: Iterable[Tuple[str, str]] = ()) -> httpx.Response:
        """GET ``path`` (relative to the source base URL) with ``params``."""
        try:
            return await self.circuit_breaker.call(self._get, path, list(params))
        except CircuitBreakerOpenException as exc:
            raise UpstreamFailure(self.name, "circuit open") from exc
        except httpx.TransportError as exc:
            self.logger.error("Upstream request failed", path=path, error=str(exc) or type(exc).__name__)
            raise UpstreamFailure(self.name, str(exc) or type(exc).__name__, details={"path": path}) from exc

    @retry_on_exception((httpx.TransportError,), config=RetryConfig(max_attempts=3, base_delay=0.5))
    async def _get(self, path: str, params: List[Tuple[str, str]]) -> httpx.Response:
        response = await self._client.get("/" + path.lstrip("/"), params=params)
        if response.status_code >= 500:
            self.logger.warning("Upstream returned server error", path=path, status_code=response.status_code)
        return response

    async def close(self) -> None:
        await self._client.aclose()


class SourceRegistry:
    """Named upstream sources exposed under the API base path."""

    def __init__(self, sources: Dict[str, str], *, timeout: float = 10.0):
        self._clients: Dict[str, SourceClient] = {
            name: SourceClient(name, url, timeout=timeout) for name, url in sources.items()
        }

    def __contains__(self, name: str) -> bool:
        return name in self._clients

    @property
    def names(self) -> List[str]:
        return sorted(self._clients)

    def get(self, name: str) -> SourceClient:
        client = self._clients.get(name)
        if client is None:
            raise NotFoundError(f"Unknown source '{name}'", details={"available": self.names})
        return client

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
