"""Upstream commands -- run memoized JSON lookups from the shell.

Provides the ``alliopro upstream`` sub-command group.  ``get`` performs the
same lookup a request handler would: retries and timeouts come from the
``upstream`` config section and the memo cache is sized by ``memo``.
"""

from __future__ import annotations

from typing import Optional

import typer

from alliopro.client import UpstreamClient
from alliopro.config import resolve_config
from alliopro.exceptions import InvalidUsageError
from alliopro.models import GlobalConfig
from alliopro.output import debug, format_response

upstream_app = typer.Typer(no_args_is_help=True)


def _upstream_client(config: GlobalConfig) -> UpstreamClient:
    return UpstreamClient.from_config(config)


def _pairs(values: Optional[list[str]], separator: str, what: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition(separator)
        if not sep or not name.strip():
            raise InvalidUsageError(f"Expected {what} as NAME{separator}VALUE, got: {item}")
        result[name.strip()] = value.strip()
    return result


@upstream_app.command("get")
def upstream_get(
    url: str = typer.Argument(help="Absolute upstream URL."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="Query parameter as NAME=VALUE (repeatable)."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as NAME:VALUE (repeatable)."
    ),
    repeat: int = typer.Option(
        1, "--repeat", min=1, help="Run the lookup this many times (memo hits after the first)."
    ),
) -> None:
    """Fetch an upstream JSON document through the memo cache.

    Exits with code 5 on an HTTP error and 6 when the upstream is
    unreachable after all attempts.

    Example::

        alliopro upstream get https://api.example.com/videos/42 -p lang=en
    """
    params = _pairs(param, "=", "query parameter")
    headers = _pairs(header, ":", "header")
    config = resolve_config()

    with _upstream_client(config) as client:
        for _ in range(repeat):
            data = client.get_json(url, params=params, headers=headers)
        stats = client.stats()

    debug(
        f"Memo: {stats['hits']} hits, {stats['misses']} misses, "
        f"{stats['size']}/{stats['capacity']} entries, ttl {stats['ttl_seconds']}s"
    )
    format_response(data)
