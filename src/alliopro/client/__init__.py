"""Upstream HTTP client module for alliopro.

:class:`UpstreamClient` wraps :class:`httpx.Client` with retry, linear
backoff and memoization through a :class:`~alliopro.cache.BoundedTTLCache`
injected by the caller.
"""

from alliopro.client.upstream import UpstreamClient

__all__ = ["UpstreamClient"]
