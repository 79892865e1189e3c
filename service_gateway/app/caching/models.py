"""
Value objects exchanged between the request pipeline and the cache.

These are frozen dataclasses with no framework dependencies; the pipeline
converts Starlette requests/responses to and from them.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple


IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class CacheRequest:
    """The parts of an inbound request that identify its content.

    Headers are deliberately absent: the cache is addressed by URL only.
    """

    method: str
    path: str
    query: Sequence[Tuple[str, str]] = ()

    @property
    def is_idempotent(self) -> bool:
        return self.method.upper() in IDEMPOTENT_METHODS


@dataclass(frozen=True)
class CachedResponse:
    """A stored upstream response: status, body and content type."""

    status_code: int
    body: bytes
    content_type: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def to_bytes(self) -> bytes:
        return json.dumps({
            "status_code": self.status_code,
            "content_type": self.content_type,
            "body": base64.b64encode(self.body).decode("ascii"),
        }).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CachedResponse":
        """Decode a stored entry. Raises ValueError on malformed data."""
        try:
            data = json.loads(raw)
            return cls(
                status_code=int(data["status_code"]),
                body=base64.b64decode(data["body"]),
                content_type=data.get("content_type"),
            )
        except (TypeError, KeyError, json.JSONDecodeError, binascii.Error) as exc:
            raise ValueError(f"malformed cache entry: {exc}") from exc


@dataclass(frozen=True)
class CacheResolution:
    """Outcome of resolving a request through the cache.

    Attributes:
        value: The response to send, from the store or from upstream
        served_from_cache: True when no upstream call was made
        ttl: Seconds downstream caches may keep the response; 0 means no-store
        status: "HIT", "MISS" or "BYPASS"
    """

    value: CachedResponse
    served_from_cache: bool
    ttl: int
    status: str = field(default="MISS")
