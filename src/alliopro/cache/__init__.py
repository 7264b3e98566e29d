"""In-process memoization cache for alliopro.

This package provides :class:`BoundedTTLCache`, a FIFO-bounded cache with a
per-entry time-to-live.  Request handling code constructs one instance per
process and injects it wherever expensive lookups are memoized (see
:class:`~alliopro.client.UpstreamClient`).

The cache is sized by the ``memo`` section of the global configuration
(:class:`~alliopro.models.MemoCacheConfig`).
"""

from alliopro.cache.ttl_cache import BoundedTTLCache, CacheEntry

__all__ = ["BoundedTTLCache", "CacheEntry"]
