"""``alliopro config`` -- inspect and edit ``config.json``.

Keys use dots to reach into sections: ``memo.ttl_seconds``,
``upstream.max_attempts``, ``interceptor.origin`` and so on.  Every change
is validated as a whole :class:`~alliopro.models.GlobalConfig` before the
file is rewritten, so a bad value never reaches disk.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from alliopro.config import config_path, load_global_config, save_global_config
from alliopro.exceptions import InvalidUsageError
from alliopro.models import GlobalConfig
from alliopro.output import format_response, info, success

config_app = typer.Typer(no_args_is_help=True)

_TRUE = frozenset({"true", "1", "yes", "on"})


@config_app.command("show")
def config_show() -> None:
    """Print the effective file settings (defaults filled in).

    Example::

        alliopro --json config show
    """
    info(f"Config file: {config_path()}")
    format_response(load_global_config().model_dump(mode="json"))


def _section(data: dict[str, Any], key: str) -> tuple[dict[str, Any], str]:
    """Return the dict holding the leaf of dotted *key*, and the leaf name."""
    *path, leaf = key.split(".")
    node: Any = data
    for part in path:
        node = node.get(part) if isinstance(node, dict) else None
        if not isinstance(node, dict):
            raise InvalidUsageError(f"Invalid config key: {key}")
    if leaf not in node or isinstance(node[leaf], dict):
        raise InvalidUsageError(f"Unknown config key: {key}")
    return node, leaf


def _coerce(key: str, current: Any, value: str) -> Any:
    """Parse *value* as the type of the setting it replaces."""
    if isinstance(current, bool):
        return value.strip().lower() in _TRUE
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(current, (int, float)):
        kind = type(current)
        try:
            return kind(value)
        except ValueError:
            noun = "integer" if kind is int else "number"
            raise InvalidUsageError(f"Expected {noun} for {key}, got: {value}") from None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. 'interceptor.origin'."),
    value: str = typer.Argument(help="New value; lists are comma-separated."),
) -> None:
    """Change one setting.

    Raises:
        InvalidUsageError: Unknown key, unparsable value, or a value the
            config model rejects.

    Example::

        alliopro config set interceptor.origin https://allio.example
        alliopro config set memo.ttl_seconds 600
        alliopro config set interceptor.network_only_hosts fonts.googleapis.com,cdn.example
    """
    data = load_global_config().model_dump(mode="json")
    section, leaf = _section(data, key)
    section[leaf] = _coerce(key, section[leaf], value)

    try:
        updated = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise InvalidUsageError(f"Validation error: {exc}") from None

    save_global_config(updated)
    success(f"Set {key} = {section[leaf]}")


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Overwrite ``config.json`` with the defaults."""
    if not yes and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()
    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
