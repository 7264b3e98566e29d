"""Interceptor commands -- drive the cache generation lifecycle from the shell.

Provides the ``alliopro sw`` sub-command group:

* ``install`` -- precache the asset manifest into the current generation and
  activate it, deleting every other generation.
* ``fetch`` -- fetch a URL network-first through the active generation.
* ``stores`` -- list the generation stores on disk.
* ``delete`` -- delete one generation store.

Stores live under :func:`~alliopro.config.get_stores_dir`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import typer

from alliopro.config import get_stores_dir, resolve_config
from alliopro.exceptions import NotFoundError
from alliopro.interceptor import (
    CacheStorage,
    ClientHost,
    InterceptorWorker,
    Registration,
)
from alliopro.models import InterceptorConfig
from alliopro.output import format_response, info, print_table, success, suggest

sw_app = typer.Typer(no_args_is_help=True)


def _interceptor_config(ctx: typer.Context) -> InterceptorConfig:
    obj = ctx.obj or {}
    return resolve_config(cli_origin=obj.get("origin")).interceptor


def _http_client(config: InterceptorConfig) -> httpx.AsyncClient:
    """Client used for precache and network-first fetches."""
    return httpx.AsyncClient(timeout=config.fetch_timeout, follow_redirects=True)


@sw_app.command("install")
def sw_install(ctx: typer.Context) -> None:
    """Precache the asset manifest and activate the current generation.

    The install is all-or-nothing: when any asset cannot be fetched nothing
    is stored and the command fails with exit code 7.

    Example::

        alliopro --origin http://localhost:3000 sw install
    """
    config = _interceptor_config(ctx)
    info(f"Installing {config.cache_name} from {config.origin}")
    count, removed = asyncio.run(_install(config))
    success(f"Precached {count} assets into {config.cache_name}")
    for name in removed:
        info(f"Deleted stale generation {name}")


async def _install(config: InterceptorConfig) -> tuple[int, list[str]]:
    with CacheStorage(get_stores_dir()) as storage:
        before = set(storage.keys())
        async with _http_client(config) as http:
            registration = Registration(ClientHost())
            worker = InterceptorWorker(config, storage, registration.host, http)
            await registration.register(worker)
        assert worker.store is not None
        removed = sorted(before - set(storage.keys()))
        return len(worker.store), removed


@sw_app.command("fetch")
def sw_fetch(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL, or a path relative to the origin."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
) -> None:
    """Fetch a URL network-first, falling back to the active generation.

    Exits with code 4 when neither the network nor the store answers.

    Example::

        alliopro sw fetch /data.json
    """
    config = _interceptor_config(ctx)
    target = httpx.URL(config.origin).join(url)
    response = asyncio.run(_fetch(config, httpx.Request(method.upper(), target)))
    if response is None:
        raise NotFoundError(f"No network response and nothing cached for {target}")

    info(f"HTTP {response.status_code} {response.reason_phrase or ''}".rstrip())
    data = _response_data(response)
    if data is not None:
        format_response(data, response.headers.get("content-type", "application/json"))


async def _fetch(
    config: InterceptorConfig, request: httpx.Request
) -> Optional[httpx.Response]:
    with CacheStorage(get_stores_dir()) as storage:
        async with _http_client(config) as http:
            worker = InterceptorWorker(config, storage, ClientHost(), http)
            await worker.resume()
            return await worker.handle_fetch(request)


def _response_data(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


@sw_app.command("stores")
def sw_stores(ctx: typer.Context) -> None:
    """List generation stores with their entry counts and readiness."""
    config = _interceptor_config(ctx)
    rows = []
    with CacheStorage(get_stores_dir()) as storage:
        for name in storage.keys():
            store = storage.open(name)
            rows.append([
                name,
                str(len(store)),
                "yes" if store.is_ready else "no",
                "yes" if name == config.cache_name else "no",
            ])
    if not rows:
        info("No cache stores.")
        suggest("Run 'alliopro sw install' to precache the current generation.")
        return
    print_table(["name", "entries", "ready", "current"], rows, title="Cache stores")


@sw_app.command("delete")
def sw_delete(name: str = typer.Argument(help="Store name to delete.")) -> None:
    """Delete one generation store."""
    with CacheStorage(get_stores_dir()) as storage:
        if not storage.delete(name):
            raise NotFoundError(f"No cache store named {name}")
    success(f"Deleted {name}")
