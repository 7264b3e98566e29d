"""Bounded, time-limited in-process cache for memoizing server-side lookups.

:class:`BoundedTTLCache` holds at most ``capacity`` entries.  Each entry
expires ``ttl_seconds`` after it was written; expiry is lazy and only
evaluated when the key is read, so there is no background sweep.  When a new
key arrives at capacity the earliest-inserted entry is evicted (strict FIFO:
reads never change an entry's position).

Insertion order is tracked by an explicit doubly-linked list threaded
through the entries, with a dict for key lookup, so eviction is O(1) and
does not depend on dict iteration order.  Overwriting a key resets its
timestamp and moves it to the newest end of the list.

See Also:
    :class:`~alliopro.models.MemoCacheConfig` -- the Pydantic model that
    controls ``capacity`` and ``ttl_seconds``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

from alliopro.models import MemoCacheConfig

logger = logging.getLogger(__name__)


class CacheEntry:
    """One cached value plus its links in the insertion-order list."""

    __slots__ = ("key", "value", "inserted_at", "prev", "next")

    def __init__(self, key: Hashable, value: Any, inserted_at: float) -> None:
        self.key = key
        self.value = value
        self.inserted_at = inserted_at
        self.prev: Optional[CacheEntry] = None
        self.next: Optional[CacheEntry] = None


class BoundedTTLCache:
    """FIFO-bounded cache with per-entry time-to-live.

    The cache never raises on lookups: a missing or expired key is a miss
    and ``get`` returns its *default*, leaving recomputation to the caller.
    Every operation holds an internal lock, so one instance can be shared
    by request handlers running on different threads.

    Args:
        capacity: Maximum number of entries held after any ``set``.
        ttl_seconds: Age at which an entry stops being returned.
        clock: Monotonic time source in seconds.  Tests inject a fake.

    Example::

        cache = BoundedTTLCache.from_config(MemoCacheConfig())
        data = cache.get(key)
        if data is None:
            data = expensive_lookup()
            cache.set(key, data)
    """

    def __init__(
        self,
        capacity: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._head: Optional[CacheEntry] = None  # oldest
        self._tail: Optional[CacheEntry] = None  # newest
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @classmethod
    def from_config(
        cls, config: MemoCacheConfig, clock: Callable[[], float] = time.monotonic
    ) -> BoundedTTLCache:
        """Build a cache sized by a :class:`~alliopro.models.MemoCacheConfig`."""
        return cls(capacity=config.capacity, ttl_seconds=config.ttl_seconds, clock=clock)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default* on a miss.

        An entry whose age has reached the TTL is removed and reported as
        a miss.  A hit does not move the entry.  Pass a sentinel as
        *default* to tell a stored ``None`` apart from a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if self._is_expired(entry, self._clock()):
                self._remove(entry)
                self._expirations += 1
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        """Store *value* under *key* with a fresh timestamp.

        When *key* is new and the cache is full, exactly one entry -- the
        earliest inserted -- is evicted first, so the size never exceeds
        ``capacity``.
        """
        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is not None:
                self._remove(existing)
            elif len(self._entries) >= self._capacity and self._head is not None:
                evicted = self._head
                self._remove(evicted)
                self._evictions += 1
                logger.debug("Evicted %r from memo cache", evicted.key)
            entry = CacheEntry(key, value, now)
            self._entries[key] = entry
            self._append(entry)

    def delete(self, key: Hashable) -> bool:
        """Remove *key*; return whether an entry was present."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            self._remove(entry)
            return True

    def clear(self) -> None:
        """Remove every entry.  Counters are kept."""
        with self._lock:
            self._entries.clear()
            self._head = self._tail = None

    def keys(self) -> list[Hashable]:
        """Return the stored keys, oldest first, including unread expired ones."""
        with self._lock:
            result = []
            node = self._head
            while node is not None:
                result.append(node.key)
                node = node.next
            return result

    def stats(self) -> dict[str, Any]:
        """Return size, sizing and hit/miss/eviction counters."""
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Membership honours the TTL but leaves expired entries in place.
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._is_expired(entry, self._clock())

    # ------------------------------------------------------------------ #
    # Linked-list helpers (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self._ttl

    def _append(self, entry: CacheEntry) -> None:
        entry.prev = self._tail
        entry.next = None
        if self._tail is None:
            self._head = entry
        else:
            self._tail.next = entry
        self._tail = entry

    def _remove(self, entry: CacheEntry) -> None:
        if entry.prev is None:
            self._head = entry.next
        else:
            entry.prev.next = entry.next
        if entry.next is None:
            self._tail = entry.prev
        else:
            entry.next.prev = entry.prev
        entry.prev = entry.next = None
        del self._entries[entry.key]
