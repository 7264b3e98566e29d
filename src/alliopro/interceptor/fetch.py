"""Network-first fetch handling with fallback to the generation store.

:class:`FetchHandler` answers every intercepted request:

1. The request goes to the network first, bounded by ``fetch_timeout``.
2. A ``200`` same-origin ``GET`` response is duplicated into the current
   generation store under the request identity, and the network response is
   returned.  Any other response is returned untouched and never stored.
   If the store was deleted while the request was in flight the copy is
   skipped; the response is still returned.
3. When the network attempt fails (transport error or timeout) the stored
   response for the request identity is returned instead, or ``None`` if
   there is none.  ``None`` means a failed load; it is not an error of the
   handler.

Requests to hosts listed in ``network_only_hosts`` skip the store in both
directions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from alliopro.interceptor.identity import is_same_origin, request_key
from alliopro.interceptor.storage import STORE_ERRORS, GenerationStore
from alliopro.models import CachedResponse, InterceptorConfig

logger = logging.getLogger(__name__)

_NETWORK_FAILURES = (httpx.TransportError, asyncio.TimeoutError)


class FetchHandler:
    """Apply network-first-with-fallback to intercepted requests.

    Args:
        config: Interceptor settings (origin, timeout, key headers,
            network-only hosts).
        store: The current generation's store.
        http: Client used for network attempts.
    """

    def __init__(
        self,
        config: InterceptorConfig,
        store: GenerationStore,
        http: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._store = store
        self._http = http
        self._network_only = {host.lower() for host in config.network_only_hosts}

    async def handle(self, request: httpx.Request) -> Optional[httpx.Response]:
        """Answer *request* from the network, falling back to the store."""
        if request.url.host.lower() in self._network_only:
            return await self._network_only_fetch(request)

        try:
            response = await self._send(request)
        except _NETWORK_FAILURES as exc:
            logger.debug(
                "Network failed for %s %s (%s); trying cache",
                request.method, request.url, exc.__class__.__name__,
            )
            return self._fallback(request)

        if self._is_cacheable(request, response):
            self._remember(request, response)
        return response

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send(self, request: httpx.Request) -> httpx.Response:
        return await asyncio.wait_for(
            self._http.send(request), timeout=self._config.fetch_timeout
        )

    async def _network_only_fetch(self, request: httpx.Request) -> Optional[httpx.Response]:
        try:
            return await self._send(request)
        except _NETWORK_FAILURES as exc:
            logger.debug("Network-only request %s failed: %s", request.url, exc)
            return None

    def _remember(self, request: httpx.Request, response: httpx.Response) -> None:
        # The response is returned whether or not the copy could be written.
        try:
            self._store.put(self._key(request), CachedResponse.from_httpx(response))
        except STORE_ERRORS as exc:
            logger.debug(
                "Could not store %s in %s: %s", request.url, self._store.name, exc
            )
            return
        logger.debug("Cached %s %s", request.method, request.url)

    def _fallback(self, request: httpx.Request) -> Optional[httpx.Response]:
        if request.method.upper() != "GET":
            return None
        try:
            stored = self._store.match(self._key(request))
        except STORE_ERRORS as exc:
            logger.debug("Store %s unreadable: %s", self._store.name, exc)
            return None
        if stored is None:
            return None
        return stored.to_httpx(request)

    def _is_cacheable(self, request: httpx.Request, response: httpx.Response) -> bool:
        if request.method.upper() != "GET" or response.status_code != 200:
            return False
        origin = self._config.origin
        return is_same_origin(request.url, origin) and is_same_origin(response.url, origin)

    def _key(self, request: httpx.Request) -> str:
        return request_key(request, self._config.key_headers)
