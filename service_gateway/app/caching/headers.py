"""
Cache-Control header writer.
"""

from starlette.responses import Response


def cache_control_value(ttl: int) -> str:
    if ttl > 0:
        return f"public, max-age={ttl}"
    return "no-store"


def annotate(response: Response, ttl: int) -> Response:
    """Set Cache-Control from the resolved TTL. Status and body are untouched."""
    response.headers["Cache-Control"] = cache_control_value(ttl)
    return response
