"""
Domain utilities for the Gateway Service.

Includes the request pipeline middleware that composes rate limiting,
response caching and Cache-Control annotation in front of the routes.
"""

from .pipeline import RequestPipelineMiddleware

__all__ = [
    "RequestPipelineMiddleware",
]
