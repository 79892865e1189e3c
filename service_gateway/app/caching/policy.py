"""
Route TTL policy and cache key derivation.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, urlencode

from .models import CacheRequest


CACHE_KEY_PREFIX = "cache:"

_SLASHES = re.compile(r"/{2,}")


@dataclass(frozen=True)
class RoutePolicy:
    """TTL for every path under ``path_prefix``. A TTL of 0 disables caching."""

    path_prefix: str
    ttl_seconds: int

    def __post_init__(self) -> None:
        if self.ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative, got {self.ttl_seconds}")
        object.__setattr__(self, "path_prefix", normalize_path(self.path_prefix))

    def matches(self, path: str) -> bool:
        """Match on whole path segments: /api/v1/anime matches /api/v1/anime/x, not /api/v1/animex."""
        if self.path_prefix == "/":
            return True
        return path == self.path_prefix or path.startswith(self.path_prefix + "/")


class RoutePolicyTable:
    """Longest-prefix lookup over route policies with a baseline default."""

    def __init__(self, default_ttl: int, policies: Optional[Iterable[RoutePolicy]] = None):
        if default_ttl < 0:
            raise ValueError(f"default_ttl must be non-negative, got {default_ttl}")
        self.default_ttl = default_ttl
        # Longest prefix first so the first match is the most specific
        self._policies: List[RoutePolicy] = sorted(
            policies or [], key=lambda policy: len(policy.path_prefix), reverse=True
        )

    @classmethod
    def from_mapping(cls, default_ttl: int, mapping: Dict[str, int]) -> "RoutePolicyTable":
        return cls(default_ttl, [RoutePolicy(prefix, ttl) for prefix, ttl in mapping.items()])

    @property
    def policies(self) -> List[RoutePolicy]:
        return list(self._policies)

    def match(self, path: str) -> Optional[RoutePolicy]:
        normalized = normalize_path(path)
        for policy in self._policies:
            if policy.matches(normalized):
                return policy
        return None

    def ttl_for(self, path: str) -> int:
        policy = self.match(path)
        return policy.ttl_seconds if policy else self.default_ttl


def normalize_path(path: str) -> str:
    """Collapse repeated slashes and drop the trailing slash (except for root).

    Nothing else is touched: whitespace is part of the path upstream sees.
    """
    path = _SLASHES.sub("/", "/" + path)
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def build_cache_key(request: CacheRequest) -> str:
    """Derive the store key for a request.

    Method, normalized path and query parameters sorted by name. The sort is
    stable, so repeated parameters keep their relative order. Path and query
    are percent-encoded so distinct requests never share a key.
    """
    path = quote(normalize_path(request.path), safe="/")
    key = f"{CACHE_KEY_PREFIX}{request.method.upper()}:{path}"
    params = sorted(request.query, key=lambda item: item[0])
    if params:
        key += "?" + urlencode(params, quote_via=quote)
    return key
