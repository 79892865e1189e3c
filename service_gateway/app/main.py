"""
API Gateway service for the Tatakai anime aggregation API.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.logging import get_logger

from .adapters import SourceRegistry
from .caching import CacheManager, MemoryStore, RoutePolicyTable, Store, create_counter_store, create_store
from .domain import RequestPipelineMiddleware
from .ratelimit import FixedWindowRateLimiter

BASE_PATH = "/api/v1"
KEEP_ALIVE_INTERVAL_SECONDS = 8 * 60


class GatewayService(BaseService):
    """API Gateway service implementation."""

    version = "1.0.0"
    description = "Anime aggregation gateway with response caching and rate limiting"

    def __init__(self, config: Optional[ServiceConfig] = None):
        self._background_tasks: List[asyncio.Task] = []
        super().__init__(config or get_config())

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_components(self) -> None:
        self.store = create_store(self.config)
        self.counter_store = create_counter_store(self.config, self.store)
        self.cache_manager = CacheManager(
            self.store,
            RoutePolicyTable.from_mapping(self.config.cache_ttl_seconds, self.config.cache_route_policies),
            metrics=self.metrics,
            single_flight=self.config.cache_single_flight,
        )
        self.rate_limiter = FixedWindowRateLimiter(
            self.counter_store,
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_ms,
            enabled=self.config.is_public_deployment,
            metrics=self.metrics,
        )
        self.sources = SourceRegistry(self.config.source_urls, timeout=self.config.upstream_timeout_seconds)

    def _setup_middleware(self):
        # Added first so it sits inside CORS and request logging
        self.app.add_middleware(
            RequestPipelineMiddleware,
            rate_limiter=self.rate_limiter,
            cache_manager=self.cache_manager,
            cache_scope=BASE_PATH,
        )
        super()._setup_middleware()

    def _setup_routes(self):
        super()._setup_routes()

        @self.app.get("/")
        async def root():
            return {
                "status": 200,
                "provider": "Tatakai",
                "message": "Welcome to Tatakai API!",
                "version": self.version,
                "endpoints": {name: f"{BASE_PATH}/{name}" for name in self.sources.names},
                "docs": "/openapi" if self.config.app_env != "production" else None,
            }

        @self.app.get("/version")
        async def version():
            return {"service": self.service_name, "version": self.version, "description": self.description}

        @self.app.api_route(f"{BASE_PATH}/{{source}}/{{path:path}}", methods=["GET", "HEAD"])
        async def proxy(source: str, path: str, request: Request):
            """Forward a read request to the named upstream source."""
            client = self.sources.get(source)
            upstream = await client.fetch(path, request.query_params.multi_items())
            return Response(
                content=upstream.content,
                status_code=upstream.status_code,
                media_type=upstream.headers.get("content-type"),
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"store": "ok" if await self.store.ping() else "error"}

    async def on_startup(self) -> None:
        self.logger.info(
            "Tatakai API started",
            port=self.config.port,
            base_path=BASE_PATH,
            environment=self.config.app_env,
            cache_ttl_seconds=self.config.cache_ttl_seconds,
            store="redis" if self.config.redis_url else "memory",
            rate_limit=(
                f"{self.config.rate_limit_max_requests} req/{self.rate_limiter.window_seconds:g}s"
                if self.rate_limiter.enabled else "disabled"
            ),
        )

        memory_stores = [store for store in self._stores() if isinstance(store, MemoryStore)]
        if memory_stores and self.config.cache_sweep_interval_seconds > 0:
            self._background_tasks.append(asyncio.create_task(
                sweep_expired(memory_stores, self.config.cache_sweep_interval_seconds)
            ))

        if self.config.is_public_deployment and self.config.deployment_env.lower() == "render":
            self._background_tasks.append(asyncio.create_task(
                keep_alive(f"https://{self.config.api_hostname}/health", KEEP_ALIVE_INTERVAL_SECONDS)
            ))

    async def on_shutdown(self) -> None:
        self.logger.info("Shutting down gateway")
        for task in self._background_tasks:
            task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self.sources.close()
        for store in self._stores():
            await store.close()

    def _stores(self) -> List[Store]:
        if self.counter_store is self.store:
            return [self.store]
        return [self.store, self.counter_store]


async def sweep_expired(stores: List[MemoryStore], interval: float) -> None:
    """Periodically drop expired entries from the in-process stores."""
    while True:
        await asyncio.sleep(interval)
        for store in stores:
            store.sweep()


async def keep_alive(url: str, interval: float) -> None:
    """Ping our own health endpoint so free-tier hosts do not idle the service."""
    logger = get_logger("gateway.keep_alive")
    async with httpx.AsyncClient(timeout=10.0) as client:
        while True:
            await asyncio.sleep(interval)
            try:
                response = await client.get(url)
                logger.info("Health check", url=url, status_code=response.status_code)
            except httpx.HTTPError as exc:
                logger.warning("Health check failed", url=url, error=str(exc).strip() or type(exc).__name__)


def create_app(config: Optional[ServiceConfig] = None) -> Any:
    """Create FastAPI application."""
    service = GatewayService(config)
    return service.app


def main() -> None:
    config = get_config()
    if config.is_serverless:
        get_logger("gateway.main").info("Serverless deployment, not starting embedded server",
                                        deployment_env=config.deployment_env,
                                        asgi_app="service_gateway.app.asgi:app")
        return
    GatewayService(config).run()


if __name__ == "__main__":
    main()
