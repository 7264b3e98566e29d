"""Canonical Pydantic models shared across all alliopro modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`MemoCacheConfig`, :class:`UpstreamConfig`,
    :class:`InterceptorConfig` and :class:`GlobalConfig`.

**Storage models** -- written to the interceptor's persistent stores:
    :class:`CachedResponse`.

All models use Pydantic v2.
"""

from __future__ import annotations

import time
from typing import Optional

import httpx
from pydantic import BaseModel, Field, field_validator

DEFAULT_CACHE_NAME = "alliopro-cache-v1"
"""Tag of the current cache generation."""

DEFAULT_ASSETS: tuple[str, ...] = (
    "/",
    "/index.html",
    "/style.css",
    "/script.js",
    "/manifest.json",
)
"""Paths precached when a generation is installed."""

_FRAMING_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


# --- Config ---


class MemoCacheConfig(BaseModel):
    """Sizing for the server-side :class:`~alliopro.cache.BoundedTTLCache`."""

    capacity: int = Field(default=100, ge=1, description="Maximum number of entries")
    ttl_seconds: int = Field(default=300, gt=0, description="Entry time-to-live in seconds")


class UpstreamConfig(BaseModel):
    """Settings for memoized upstream lookups made by :class:`~alliopro.client.UpstreamClient`."""

    timeout: int = Field(default=30, gt=0, description="Per-attempt timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, description="Attempts before giving up")
    backoff_seconds: float = Field(
        default=1.0, ge=0, description="Linear backoff unit between attempts"
    )


class InterceptorConfig(BaseModel):
    """Settings for the network-first request interceptor.

    ``cache_name`` is the tag of the current cache generation; stores with
    any other name are deleted when a worker activates.  ``assets`` is the
    manifest precached at install time, as paths relative to ``origin``.

    Example::

        InterceptorConfig(origin="https://allio.example", fetch_timeout=10)
    """

    cache_name: str = Field(default=DEFAULT_CACHE_NAME, description="Current generation tag")
    assets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ASSETS),
        description="Paths precached at install time",
    )
    origin: str = Field(
        default="http://localhost:3000", description="Origin the interceptor serves"
    )
    fetch_timeout: int = Field(
        default=30, gt=0, description="Seconds before a network attempt falls back to cache"
    )
    network_only_hosts: list[str] = Field(
        default_factory=list,
        description="Hosts that always go straight to the network, never cached",
    )
    key_headers: list[str] = Field(
        default_factory=list,
        description="Request headers that take part in the request identity",
    )

    @field_validator("origin")
    @classmethod
    def _origin_has_scheme(cls, value: str) -> str:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"origin is not a valid URL: {value!r}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"origin must be an absolute http(s) URL, got {value!r}")
        if url.path not in ("", "/") or url.query or url.fragment:
            raise ValueError(f"origin must not carry a path, query or fragment, got {value!r}")
        return value.rstrip("/")

    @field_validator("key_headers")
    @classmethod
    def _lowercase_headers(cls, value: list[str]) -> list[str]:
        return sorted({h.lower() for h in value})


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/alliopro/config.json``.

    Loaded and saved by :func:`~alliopro.config.load_global_config` and
    :func:`~alliopro.config.save_global_config`.  See
    :func:`~alliopro.config.resolve_config` for the precedence chain.
    """

    memo: MemoCacheConfig = Field(default_factory=MemoCacheConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    interceptor: InterceptorConfig = Field(default_factory=InterceptorConfig)


# --- Stored responses ---


class CachedResponse(BaseModel):
    """A response captured into a persistent generation store.

    Headers are kept as ordered name/value pairs so repeated headers such as
    ``Set-Cookie`` survive the round trip.
    """

    url: str
    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes = b""
    stored_at: float = Field(default_factory=time.time)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> CachedResponse:
        """Capture *response* (whose body must already be read).

        The body is stored decoded, so framing headers describing the wire
        encoding are dropped.
        """
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _FRAMING_HEADERS
        ]
        return cls(
            url=str(response.request.url),
            status_code=response.status_code,
            headers=headers,
            content=response.content,
        )

    def to_httpx(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        """Rebuild an :class:`httpx.Response` from the stored capture."""
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            content=self.content,
            request=request or httpx.Request("GET", self.url),
        )
