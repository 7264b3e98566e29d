"""Install/activate/fetch lifecycle of an interceptor generation.

An :class:`InterceptorWorker` serves one cache generation and moves through
the states of :class:`WorkerState`::

    PARSED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVE -> SUPERSEDED
                  |
                  +-> REDUNDANT   (precache failed)

Every transition is a coroutine: the host awaits it before driving the next
one, so Install always finishes before Activate, and Activate's store
cleanup always finishes before pages are claimed.

:class:`Registration` plays the host.  It installs new workers, promotes
them, retires the previous active worker and dispatches fetches, one
asyncio task per request.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

import httpx

from alliopro.exceptions import LifecycleError, PrecacheError
from alliopro.interceptor.fetch import FetchHandler
from alliopro.interceptor.host import ClientHost
from alliopro.interceptor.identity import request_key
from alliopro.interceptor.storage import CacheStorage, GenerationStore
from alliopro.models import CachedResponse, InterceptorConfig

logger = logging.getLogger(__name__)


class WorkerState(str, enum.Enum):
    """Lifecycle states of an :class:`InterceptorWorker`."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    REDUNDANT = "redundant"


class InterceptorWorker:
    """One cache generation's interceptor.

    Args:
        config: Interceptor settings; ``config.cache_name`` is this
            worker's generation tag.
        storage: The per-origin storage root.
        host: The open pages this worker claims on activation.
        http: Client for precache and network-first fetches.

    Example::

        worker = InterceptorWorker(config, storage, host, http)
        await worker.install()
        await worker.activate()
        response = await worker.handle_fetch(httpx.Request("GET", url))
    """

    def __init__(
        self,
        config: InterceptorConfig,
        storage: CacheStorage,
        host: ClientHost,
        http: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._storage = storage
        self._host = host
        self._http = http
        self._state = WorkerState.PARSED
        self._store: Optional[GenerationStore] = None
        self._handler: Optional[FetchHandler] = None
        self.skip_waiting = False

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def cache_name(self) -> str:
        return self._config.cache_name

    @property
    def store(self) -> Optional[GenerationStore]:
        """The generation store, once Install succeeded."""
        return self._store

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    async def install(self) -> None:
        """Precache the asset manifest into this generation's store.

        All manifest assets are fetched before anything is written.  If any
        fetch fails or answers with a non-2xx status nothing is stored, the
        worker becomes :attr:`WorkerState.REDUNDANT` and
        :class:`~alliopro.exceptions.PrecacheError` is raised.  On success
        the entries and the ready marker are written in one transaction and
        :attr:`skip_waiting` is set.

        Raises:
            LifecycleError: If the worker was already installed.
            PrecacheError: If any manifest asset could not be fetched.
        """
        self._require("install", WorkerState.PARSED)
        self._transition(WorkerState.INSTALLING)

        created = not self._storage.has(self.cache_name)
        store = self._storage.open(self.cache_name)

        requests = [self._asset_request(path) for path in self._config.assets]
        results = await asyncio.gather(
            *(self._fetch_asset(request) for request in requests),
            return_exceptions=True,
        )

        failed = [
            path
            for path, result in zip(self._config.assets, results)
            if not (isinstance(result, httpx.Response) and result.is_success)
        ]
        if failed:
            self._transition(WorkerState.REDUNDANT)
            if created and len(store) == 0:
                self._storage.delete(self.cache_name)
            raise PrecacheError(
                f"Could not precache {len(failed)} of {len(requests)} assets "
                f"for {self.cache_name}: {', '.join(failed)}",
                failed=failed,
            )

        entries = [
            (request_key(request, self._config.key_headers), CachedResponse.from_httpx(result))
            for request, result in zip(requests, results)
        ]
        store.put_all(entries, mark_ready=True)
        self._store = store
        self.skip_waiting = True
        self._transition(WorkerState.INSTALLED)

    async def activate(self) -> list[str]:
        """Delete stale generations, then claim every open page.

        Returns:
            The names of the stores that were deleted.

        Raises:
            LifecycleError: If the worker is not installed.
        """
        self._require("activate", WorkerState.INSTALLED)
        self._transition(WorkerState.ACTIVATING)

        removed = []
        for name in self._storage.keys():
            if name != self.cache_name:
                self._storage.delete(name)
                removed.append(name)

        await self._host.claim(self.cache_name)
        self._start_handler()
        self._transition(WorkerState.ACTIVE)
        return removed

    async def resume(self) -> None:
        """Bring back a generation activated by an earlier process.

        The store must exist and be ready.  Nothing is pruned and no pages
        are claimed.

        Raises:
            LifecycleError: If the worker is not fresh or its generation was
                never fully installed.
        """
        self._require("resume", WorkerState.PARSED)
        if not self._storage.has(self.cache_name):
            raise LifecycleError(f"Generation {self.cache_name} is not installed")
        store = self._storage.open(self.cache_name)
        if not store.is_ready:
            raise LifecycleError(f"Generation {self.cache_name} never finished installing")
        self._store = store
        self._start_handler()
        self._transition(WorkerState.ACTIVE)

    def supersede(self) -> None:
        """Retire this worker after a newer generation took over."""
        self._require("supersede", WorkerState.INSTALLED, WorkerState.ACTIVE)
        self._handler = None
        self._transition(WorkerState.SUPERSEDED)

    async def handle_fetch(self, request: httpx.Request) -> Optional[httpx.Response]:
        """Answer an intercepted request network-first.

        Returns:
            The network response, the stored fallback, or ``None`` when
            neither is available.

        Raises:
            LifecycleError: If the worker is not active.
        """
        self._require("handle fetch", WorkerState.ACTIVE)
        assert self._handler is not None
        return await self._handler.handle(request)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _asset_request(self, path: str) -> httpx.Request:
        url = httpx.URL(self._config.origin).join(path)
        return httpx.Request("GET", url)

    async def _fetch_asset(self, request: httpx.Request) -> httpx.Response:
        return await asyncio.wait_for(
            self._http.send(request), timeout=self._config.fetch_timeout
        )

    def _start_handler(self) -> None:
        assert self._store is not None
        self._handler = FetchHandler(self._config, self._store, self._http)

    def _require(self, action: str, *states: WorkerState) -> None:
        if self._state not in states:
            raise LifecycleError(
                f"Cannot {action} generation {self.cache_name} in state {self._state.value}"
            )

    def _transition(self, state: WorkerState) -> None:
        logger.debug("%s: %s -> %s", self.cache_name, self._state.value, state.value)
        self._state = state


class Registration:
    """Host-side coordinator for interceptor generations.

    Tracks the ``installing``, ``waiting`` and ``active`` workers for one
    origin and routes fetches to the active one.

    Args:
        host: Registry of open pages.
    """

    def __init__(self, host: ClientHost) -> None:
        self.host = host
        self.installing: Optional[InterceptorWorker] = None
        self.waiting: Optional[InterceptorWorker] = None
        self.active: Optional[InterceptorWorker] = None
        self._inflight: dict[Optional[str], set[asyncio.Task]] = {}

    async def register(self, worker: InterceptorWorker) -> InterceptorWorker:
        """Install *worker* and promote it when allowed.

        A worker that asked to skip waiting, or one arriving while nothing
        is active, is activated immediately and the previous active worker
        is superseded.  Otherwise it stays in :attr:`waiting`.

        Raises:
            PrecacheError: If the install failed; the current active worker
                is left in place.
        """
        self.installing = worker
        try:
            await worker.install()
        finally:
            self.installing = None

        self.waiting = worker
        if worker.skip_waiting or self.active is None:
            await self.promote()
        return worker

    async def promote(self) -> None:
        """Activate the waiting worker and retire the previous one."""
        worker = self.waiting
        if worker is None:
            raise LifecycleError("No waiting worker to promote")
        self.waiting = None
        previous = self.active
        await worker.activate()
        self.active = worker
        if previous is not None:
            previous.supersede()

    async def dispatch_fetch(
        self,
        request: httpx.Request,
        client_id: Optional[str] = None,
    ) -> Optional[httpx.Response]:
        """Run the active worker's fetch handling as its own task.

        The task is tracked under *client_id* so :meth:`navigate` can cancel
        it.

        Raises:
            LifecycleError: If no worker is active.
            asyncio.CancelledError: If the page navigated away meanwhile.
        """
        worker = self.active
        if worker is None:
            raise LifecycleError("No active worker to handle fetch")

        task = asyncio.ensure_future(worker.handle_fetch(request))
        tasks = self._inflight.setdefault(client_id, set())
        tasks.add(task)
        try:
            return await task
        finally:
            tasks.discard(task)
            if not tasks and self._inflight.get(client_id) is tasks:
                del self._inflight[client_id]

    def navigate(self, client_id: str, url: str) -> int:
        """Move a page to *url*, cancelling its in-flight fetches.

        Returns:
            The number of fetch tasks cancelled.
        """
        client = self.host.get(client_id)
        tasks = self._inflight.pop(client_id, set())
        cancelled = 0
        for task in tasks:
            if task.cancel():
                cancelled += 1
        client.url = url
        return cancelled
