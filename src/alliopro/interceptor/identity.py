"""Request identity and origin helpers for the interceptor.

A request's identity is the key its captured response is stored under.
It is the SHA-256 of ``METHOD|URL`` (fragment dropped), extended with the
values of any configured *key headers*.  With no key headers configured two
requests for the same URL share an entry regardless of their other headers,
which is what lets a page fetch fall back to an asset stored during
precache.
"""

from __future__ import annotations

import hashlib
import json
from typing import Sequence

import httpx

_DEFAULT_PORTS = {"http": 80, "https": 443}


def request_key(request: httpx.Request, key_headers: Sequence[str] = ()) -> str:
    """Return the store key identifying *request*."""
    url = str(request.url).split("#", 1)[0]
    parts = [request.method.upper(), url]
    if key_headers:
        selected = {name: request.headers.get(name, "") for name in sorted(key_headers)}
        parts.append(json.dumps(selected, sort_keys=True))
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()


def origin_of(url: httpx.URL | str) -> tuple[str, str, int]:
    """Return the ``(scheme, host, port)`` triple of *url*."""
    url = httpx.URL(url)
    port = url.port or _DEFAULT_PORTS.get(url.scheme, 0)
    return url.scheme, url.host, port


def is_same_origin(url: httpx.URL | str, origin: httpx.URL | str) -> bool:
    """True when *url* belongs to *origin* (a "basic" response in browser terms)."""
    return origin_of(url) == origin_of(origin)
