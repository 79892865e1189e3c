"""
Shared error handling for the Tatakai gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for gateway components."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(GatewayException):
    """Unknown route or resource."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StoreUnavailable(GatewayException):
    """The remote cache/rate-limit store is unreachable or timed out.

    Never surfaced to clients: the cache treats it as a miss and the
    rate limiter fails open.
    """

    status_code = 503

    def __init__(self, operation: str, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_UNAVAILABLE", f"{operation}: {message}", details)


class RateLimitExceeded(GatewayException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many requests", details: Optional[Dict[str, Any]] = None):
        self.retry_after = retry_after
        details = dict(details or {})
        details.setdefault("retry_after", retry_after)
        super().__init__("RATE_LIMIT_EXCEEDED", message, details)


class UpstreamFailure(GatewayException):
    """An upstream content source could not be reached."""

    status_code = 502

    def __init__(self, service: str, message: str = "Upstream request failed", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("UPSTREAM_FAILURE", f"{service}: {message}", details)
