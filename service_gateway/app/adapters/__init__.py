"""
Adapters package for the Gateway Service.

Contains HTTP client wrappers for the upstream content sources. Adapters
encapsulate base URLs, retry policies, circuit breakers and the mapping of
transport failures to shared errors. They never read or write the store.
"""

from .source_client import SourceClient, SourceRegistry

__all__ = [
    "SourceClient",
    "SourceRegistry",
]
