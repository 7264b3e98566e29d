"""Memoized upstream JSON lookups.

:class:`UpstreamClient` is what request handlers use for expensive calls to
third-party APIs.  Every successful lookup is memoized in an injected
:class:`~alliopro.cache.BoundedTTLCache`, so repeated requests for the same
URL and options within the TTL never leave the process.

Misses go to the network through :class:`httpx.Client` with a per-attempt
timeout and a bounded number of attempts.  Between attempts the client
sleeps ``backoff_seconds * attempt_number`` (1 s, 2 s, ... by default).
Transport errors and 5xx responses are retried; 4xx responses are not.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx

from alliopro.cache import BoundedTTLCache
from alliopro.exceptions import ConnectionError_, UpstreamError
from alliopro.models import GlobalConfig, UpstreamConfig
from alliopro.output import get_output

_MISS = object()

_DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


class UpstreamClient:
    """Blocking client for memoized upstream JSON lookups.

    Must be used as a context manager; the underlying
    :class:`httpx.Client` is opened on enter and closed on exit.  The memo
    cache is owned by the caller and outlives the client.

    Args:
        config: Timeout, attempt count and backoff settings.
        cache: The process-wide memo cache to read and populate.
        transport: Optional httpx transport, mainly for tests.

    Example::

        cache = BoundedTTLCache()
        with UpstreamClient(UpstreamConfig(), cache) as client:
            info = client.get_json("https://api.example.com/videos/42")
    """

    def __init__(
        self,
        config: UpstreamConfig,
        cache: BoundedTTLCache,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> UpstreamClient:
        """Build a client and a fresh memo cache from the user configuration.

        ``config.upstream`` sets timeout and retries; ``config.memo`` sizes
        the cache.
        """
        cache = BoundedTTLCache.from_config(config.memo)
        return cls(config.upstream, cache, transport=transport)

    @property
    def cache(self) -> BoundedTTLCache:
        return self._cache

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> UpstreamClient:
        self._client = httpx.Client(
            timeout=self._config.timeout,
            follow_redirects=True,
            headers=_DEFAULT_HEADERS,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Return the decoded JSON body of ``GET url``, memoized.

        Args:
            url: Absolute upstream URL.
            params: Query parameters; part of the memo key.
            headers: Extra request headers; part of the memo key.

        Returns:
            The decoded JSON document.

        Raises:
            UpstreamError: On a 4xx response, on a 5xx response after all
                attempts, or when the body is not valid JSON.
            ConnectionError_: When every attempt failed at the transport
                level.
        """
        key = self.memo_key(url, params, headers)
        cached = self._cache.get(key, _MISS)
        if cached is not _MISS:
            get_output().debug(f"Memo hit: {url}")
            return cached

        response = self._execute_with_retry(url, params or {}, headers or {})
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Upstream returned a non-JSON body for {url}", response.status_code
            ) from exc

        self._cache.set(key, data)
        return data

    def stats(self) -> dict[str, Any]:
        """Return the memo cache statistics."""
        return self._cache.stats()

    @staticmethod
    def memo_key(
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """Build the memo key ``"<url>_<options as sorted JSON>"``."""
        options: dict[str, Any] = {}
        if params:
            options["params"] = params
        if headers:
            options["headers"] = headers
        return f"{url}_{json.dumps(options, sort_keys=True, default=str)}"

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _execute_with_retry(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str],
    ) -> httpx.Response:
        """Send the request, retrying transport errors and 5xx responses."""
        assert self._client is not None, "Client not initialised -- use as context manager"

        attempts = self._config.max_attempts
        output = get_output()

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = self._client.get(url, params=params, headers=headers)
            except httpx.TransportError as exc:
                if last_attempt:
                    raise ConnectionError_(
                        f"Upstream unreachable after {attempts} attempts: {exc}"
                    ) from exc
                delay = self._config.backoff_seconds * (attempt + 1)
                output.debug(
                    f"Connection error: {exc}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                time.sleep(delay)
                continue

            status = response.status_code
            if status >= 500:
                if last_attempt:
                    raise UpstreamError(
                        f"HTTP {status} from {url} after {attempts} attempts", status
                    )
                delay = self._config.backoff_seconds * (attempt + 1)
                output.debug(
                    f"Server error {status}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                time.sleep(delay)
                continue
            if status >= 400:
                raise UpstreamError(f"HTTP {status} from {url}", status)
            return response

        raise UpstreamError(f"Request to {url} failed after all attempts")  # pragma: no cover
