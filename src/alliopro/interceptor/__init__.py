"""Network-first request interceptor backed by persistent per-origin storage.

The interceptor serves the site network-first.  Successful same-origin
responses are written to the current cache generation, and those stored
copies answer when the network is unreachable.

Classes:
    :class:`InterceptorWorker` -- one generation's install/activate/fetch
        lifecycle.
    :class:`Registration` -- host-side coordinator that promotes workers and
        dispatches fetches.
    :class:`CacheStorage` / :class:`GenerationStore` -- diskcache-backed
        persistent stores, one per generation.
    :class:`ClientHost` -- the open pages claimed on activation.
    :class:`FetchHandler` -- the network-first-with-fallback policy.
"""

from alliopro.interceptor.fetch import FetchHandler
from alliopro.interceptor.host import Client, ClientHost
from alliopro.interceptor.identity import is_same_origin, request_key
from alliopro.interceptor.lifecycle import InterceptorWorker, Registration, WorkerState
from alliopro.interceptor.storage import CacheStorage, GenerationStore

__all__ = [
    "CacheStorage",
    "Client",
    "ClientHost",
    "FetchHandler",
    "GenerationStore",
    "InterceptorWorker",
    "Registration",
    "WorkerState",
    "is_same_origin",
    "request_key",
]
