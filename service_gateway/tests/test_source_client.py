"""
Unit tests for upstream source clients.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from service_gateway.app.adapters import SourceClient, SourceRegistry
from shared.errors import NotFoundError, UpstreamFailure


def make_client(handler) -> SourceClient:
    transport = httpx.MockTransport(handler)
    http_client = httpx.AsyncClient(base_url="https://upstream.test", transport=transport)
    return SourceClient("hianime", "https://upstream.test", client=http_client)


class TestSourceClient:
    """Test cases for SourceClient."""

    @pytest.mark.asyncio
    async def test_fetch_forwards_path_and_query(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        response = await client.fetch("home", [("page", "2")])

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert seen["url"] == "https://upstream.test/home?page=2"
        await client.close()

    @pytest.mark.asyncio
    async def test_upstream_errors_are_passed_through(self):
        client = make_client(lambda request: httpx.Response(404, json={"message": "missing"}))

        response = await client.fetch("anime/unknown")

        assert response.status_code == 404
        assert client.circuit_breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_upstream_failure(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(UpstreamFailure) as exc_info:
                await client.fetch("home")

        assert exc_info.value.status_code == 502
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        client = make_client(lambda request: httpx.Response(200))
        client.circuit_breaker._record_failure()
        client.circuit_breaker._record_failure()
        client.circuit_breaker._record_failure()

        with pytest.raises(UpstreamFailure, match="circuit open"):
            await client.fetch("home")


class TestSourceRegistry:
    """Test cases for SourceRegistry."""

    def test_lookup(self):
        registry = SourceRegistry({"hianime": "https://a.test", "animelok": "https://b.test"})

        assert "hianime" in registry
        assert registry.names == ["animelok", "hianime"]
        assert registry.get("hianime").base_url == "https://a.test"

    def test_unknown_source(self):
        registry = SourceRegistry({})

        with pytest.raises(NotFoundError):
            registry.get("missing")
