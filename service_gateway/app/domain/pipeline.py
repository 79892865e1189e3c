"""
Request pipeline middleware: rate limit, then cache, then Cache-Control.
"""

from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from shared.errors import RateLimitExceeded
from shared.logging import get_logger, set_client_context

from ..caching import CacheManager, CachedResponse, CacheRequest, annotate
from ..caching.policy import normalize_path
from ..ratelimit import FixedWindowRateLimiter, RateLimitDecision, client_identity


def to_cache_request(request: Request) -> CacheRequest:
    return CacheRequest(
        method=request.method,
        path=request.url.path,
        query=tuple(request.query_params.multi_items()),
    )


def rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    """Propagate rate limiting metadata via standard headers."""
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_in_seconds),
    }


class RequestPipelineMiddleware(BaseHTTPMiddleware):
    """Compose the limiter, the response cache and the header writer.

    Admission always runs first and a rejected request never reaches the
    cache or a route. Paths outside ``cache_scope`` are never cached.
    """

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: FixedWindowRateLimiter,
        cache_manager: CacheManager,
        cache_scope: str = "/",
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.cache_manager = cache_manager
        self.cache_scope = normalize_path(cache_scope)
        self.logger = get_logger("gateway.pipeline")

    def _in_cache_scope(self, path: str) -> bool:
        if self.cache_scope == "/":
            return True
        path = normalize_path(path)
        return path == self.cache_scope or path.startswith(self.cache_scope + "/")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        decision: Optional[RateLimitDecision] = None
        if self.rate_limiter.enabled:
            identity = client_identity(request)
            set_client_context(identity)
            decision = await self.rate_limiter.admit(identity)
            if not decision.allowed:
                return self._reject(decision)

        if self._in_cache_scope(request.url.path):
            response = await self._resolve(request, call_next)
        else:
            response = await call_next(request)
            annotate(response, 0)

        if decision is not None:
            response.headers.update(rate_limit_headers(decision))
        return response

    async def _resolve(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        live: Dict[str, Response] = {}

        async def handler() -> CachedResponse:
            response = await call_next(request)
            body = b"".join([chunk async for chunk in response.body_iterator])
            live["response"] = response
            return CachedResponse(
                status_code=response.status_code,
                body=body,
                content_type=response.headers.get("content-type"),
            )

        resolution = await self.cache_manager.resolve(to_cache_request(request), handler)
        value = resolution.value

        if "response" in live:
            # This request ran the route itself: keep every header it produced
            response = Response(
                content=value.body,
                status_code=value.status_code,
                headers=dict(live["response"].headers),
            )
        else:
            response = Response(
                content=value.body,
                status_code=value.status_code,
                media_type=value.content_type,
            )

        response.headers["X-Cache"] = resolution.status
        return annotate(response, resolution.ttl)

    def _reject(self, decision: RateLimitDecision) -> Response:
        exc = RateLimitExceeded(
            retry_after=decision.retry_after,
            details={"limit": decision.limit, "window_seconds": self.rate_limiter.window_seconds},
        )
        headers = rate_limit_headers(decision)
        headers["Retry-After"] = str(decision.retry_after)
        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(),
            headers=headers,
        )
        return annotate(response, 0)
