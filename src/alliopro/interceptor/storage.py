"""Persistent per-generation response stores backed by :mod:`diskcache`.

:class:`CacheStorage` is the per-origin storage root.  It holds one
:class:`GenerationStore` directory per cache generation name, which lets
several generations coexist until a newly activated worker deletes the
stale ones.

Each :class:`GenerationStore` maps a request identity (see
:func:`~alliopro.interceptor.identity.request_key`) to a
:class:`~alliopro.models.CachedResponse`.  Single writes rely on
diskcache's per-key atomicity; :meth:`GenerationStore.put_all` writes a
whole batch inside one transaction, which is how Install precaches its
manifest all-or-nothing.
"""

from __future__ import annotations

import logging
import re
import shutil
import sqlite3
import time
from pathlib import Path
from typing import Iterable, Optional

import diskcache

from alliopro.exceptions import InvalidUsageError
from alliopro.models import CachedResponse

logger = logging.getLogger(__name__)

_STORE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")
_READY_KEY = "__alliopro_ready__"

#: Raised by diskcache when a store's directory was deleted underneath an open
#: handle, for instance by another generation's activation.
STORE_ERRORS = (sqlite3.Error, OSError)


def _validate_name(name: str) -> str:
    if not _STORE_NAME.match(name) or name in (".", ".."):
        raise InvalidUsageError(
            f"Invalid store name {name!r}: use letters, digits, '.', '_' or '-'"
        )
    return name


class GenerationStore:
    """One named cache generation on disk.

    Args:
        name: The generation tag, e.g. ``"alliopro-cache-v1"``.
        directory: Directory holding the diskcache files.
    """

    def __init__(self, name: str, directory: Path) -> None:
        self._name = name
        self._directory = directory
        self._cache = diskcache.Cache(str(directory))

    @property
    def name(self) -> str:
        return self._name

    @property
    def directory(self) -> Path:
        return self._directory

    def put(self, key: str, response: CachedResponse) -> None:
        """Store *response* under *key*, replacing any previous entry.

        Raises:
            FileNotFoundError: If the store was deleted since it was opened.
        """
        # diskcache recreates missing directories for large values.
        if not self._directory.is_dir():
            raise FileNotFoundError(f"Cache store {self._name} no longer exists")
        self._cache.set(key, response.model_dump())

    def put_all(
        self,
        entries: Iterable[tuple[str, CachedResponse]],
        mark_ready: bool = False,
    ) -> None:
        """Store every entry in a single transaction.

        Either all entries (and the ready marker, when requested) become
        visible or none do.
        """
        with self._cache.transact():
            for key, response in entries:
                self._cache.set(key, response.model_dump())
            if mark_ready:
                self._cache.set(_READY_KEY, time.time())

    def match(self, key: str) -> Optional[CachedResponse]:
        """Return the response stored under *key*, or ``None``."""
        if key == _READY_KEY:
            return None
        raw = self._cache.get(key)
        if raw is None:
            return None
        return CachedResponse.model_validate(raw)

    def delete(self, key: str) -> bool:
        """Remove one entry; return whether it existed."""
        return bool(self._cache.delete(key))

    def mark_ready(self) -> None:
        """Flag the generation as completely precached."""
        self._cache.set(_READY_KEY, time.time())

    @property
    def is_ready(self) -> bool:
        """Whether a full precache has completed into this store."""
        return _READY_KEY in self._cache

    def keys(self) -> list[str]:
        """Return the request identities held by the store."""
        return [key for key in self._cache.iterkeys() if key != _READY_KEY]

    def entries(self) -> list[CachedResponse]:
        """Return every stored response."""
        found = (self.match(key) for key in self.keys())
        return [response for response in found if response is not None]

    def close(self) -> None:
        """Release the underlying diskcache handles."""
        self._cache.close()

    def __len__(self) -> int:
        return len(self._cache) - (1 if self.is_ready else 0)

    def __repr__(self) -> str:
        return f"GenerationStore(name={self._name!r}, directory={str(self._directory)!r})"


class CacheStorage:
    """Per-origin storage root holding one store per cache generation.

    Args:
        root: Directory under which each generation gets its own
            sub-directory.

    Example::

        with CacheStorage(get_stores_dir()) as storage:
            store = storage.open("alliopro-cache-v1")
            print(storage.keys())
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._stores: dict[str, GenerationStore] = {}

    @property
    def root(self) -> Path:
        return self._root

    def open(self, name: str) -> GenerationStore:
        """Open the store called *name*, creating it if absent."""
        _validate_name(name)
        store = self._stores.get(name)
        if store is None:
            store = GenerationStore(name, self._root / name)
            self._stores[name] = store
        return store

    def has(self, name: str) -> bool:
        """Whether a store called *name* exists on disk."""
        _validate_name(name)
        return (self._root / name).is_dir()

    def keys(self) -> list[str]:
        """Return the names of all existing stores, sorted."""
        return sorted(
            path.name
            for path in self._root.iterdir()
            if path.is_dir() and _STORE_NAME.match(path.name)
        )

    def delete(self, name: str) -> bool:
        """Delete the store called *name*; return whether it existed."""
        _validate_name(name)
        store = self._stores.pop(name, None)
        if store is not None:
            store.close()
        path = self._root / name
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.debug("Deleted cache store %s", name)
        return True

    def close(self) -> None:
        """Close every store opened through this root."""
        for store in self._stores.values():
            store.close()
        self._stores.clear()

    def __enter__(self) -> CacheStorage:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
