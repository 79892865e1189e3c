"""
Base service class for the Tatakai gateway.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match
from contextlib import asynccontextmanager
from typing import Dict, Optional
import time

from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ErrorResponse, GatewayException, RateLimitExceeded


class BaseService:
    """Base service class with common functionality."""

    version = "1.0.0"
    description = ""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or get_config()
        self.service_name = self.config.service_name

        configure_logging(self.service_name, self.config.log_level, self.config.log_format)
        self.logger = get_logger(f"{self.service_name}.service")
        self.metrics = get_metrics_collector(self.service_name)
        self._start_time = time.time()

        self._setup_components()
        self.app = self._create_app()
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_components(self) -> None:
        """Build service collaborators once config, logging and metrics exist."""

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=self.description,
            version=self.version,
            docs_url="/openapi" if self.config.app_env != "production" else None,
            redoc_url=None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.on_startup()
        try:
            yield
        finally:
            await self.on_shutdown()

    async def on_startup(self) -> None:
        """Start background work. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Release resources. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware.

        Starlette wraps each added middleware around the previous ones, so
        request logging (added last) is the outermost layer.
        """

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.allowed_origins,
            allow_credentials="*" not in self.config.allowed_origins,
            allow_methods=["GET", "HEAD", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["Retry-After", "X-Cache", "X-Request-ID",
                            "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        )

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                response = await call_next(request)
            except Exception:
                self.logger.error(
                    "HTTP request failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.time() - start_time) * 1000, 2),
                    exc_info=True,
                )
                raise
            else:
                duration = time.time() - start_time
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=self._route_template(request),
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    cache=response.headers.get("X-Cache"),
                    duration_ms=round(duration * 1000, 2)
                )
                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _route_template(self, request: Request) -> str:
        """Metric label for a request: the matched route path, never the raw URL.

        Responses answered before routing (cache hits, rejections) have no
        route in scope yet, so the router table is matched directly.
        """
        route = request.scope.get("route")
        if route is None:
            for candidate in self.app.router.routes:
                match, _ = candidate.matches(request.scope)
                if match == Match.FULL:
                    route = candidate
                    break
        return getattr(route, "path", None) or "unmatched"

    def _setup_exception_handlers(self):
        """Render every error with the shared envelope."""

        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            if isinstance(exc, RateLimitExceeded):
                self.logger.info("Rate limited request", code=exc.code, details=exc.details)
            else:
                self.logger.error(
                    "Gateway error",
                    code=exc.code,
                    message=exc.message,
                    details=exc.details
                )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
            message = "Resource not found" if exc.status_code == 404 else str(exc.detail)
            body = ErrorResponse(code=code, message=message, details={"path": request.url.path})
            return JSONResponse(
                status_code=exc.status_code,
                content=body.model_dump(),
                headers=getattr(exc, "headers", None)
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=exc)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(code="INTERNAL_ERROR", message="Internal server error").model_dump()
            )

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health", response_class=PlainTextResponse)
        async def health_check():
            """Liveness probe."""
            return "daijoubu"

        @self.app.get("/healthz")
        async def health_details():
            """Health check with dependency status."""
            dependencies = await self._check_dependencies()
            healthy = all(value == "ok" for value in dependencies.values())
            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "service": self.service_name,
                    "status": "ok" if healthy else "degraded",
                    "uptime_seconds": round(self._get_uptime(), 3),
                    "dependencies": dependencies,
                    "version": self.version,
                }
            )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            timeout_graceful_shutdown=self.config.shutdown_grace_seconds,
        )
