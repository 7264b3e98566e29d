"""Where alliopro keeps its files, and which settings win.

Config, cache and crash-log directories follow the XDG base directory
variables on Linux and BSD and live under ``~/.alliopro`` on other systems.
The generation stores sit in ``<cache dir>/stores``.

Settings are one :class:`~alliopro.models.GlobalConfig` in ``config.json``,
rewritten through a temp file and ``os.replace``.  :func:`resolve_config`
applies ``--origin`` and the ``ALLIOPRO_*`` variables on top of it.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from alliopro.exceptions import ConfigError
from alliopro.models import GlobalConfig, InterceptorConfig

_APP_NAME = "alliopro"
_CONFIG_FILENAME = "config.json"

ENV_ORIGIN = "ALLIOPRO_ORIGIN"
ENV_CACHE_NAME = "ALLIOPRO_CACHE_NAME"


# --- Directories ---

# kind -> (XDG variable, default under $HOME, sub-path under ~/.alliopro)
_LOCATIONS: dict[str, tuple[str, tuple[str, ...], tuple[str, ...]]] = {
    "config": ("XDG_CONFIG_HOME", (".config",), ()),
    "cache": ("XDG_CACHE_HOME", (".cache",), ("cache",)),
    "data": ("XDG_DATA_HOME", (".local", "share"), ("logs",)),
}


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    env_var, home_default, fallback = _LOCATIONS[kind]
    if _is_xdg_platform():
        base = os.environ.get(env_var) or Path.home().joinpath(*home_default)
        path = Path(base) / _APP_NAME
    else:
        path = Path.home().joinpath(f".{_APP_NAME}", *fallback)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json``.

    ``$XDG_CONFIG_HOME/alliopro`` on Linux and BSD, ``~/.alliopro`` elsewhere.
    """
    return _app_dir("config")


def get_cache_dir() -> Path:
    """``$XDG_CACHE_HOME/alliopro`` on Linux and BSD, ``~/.alliopro/cache`` elsewhere."""
    return _app_dir("cache")


def get_data_dir() -> Path:
    """Where crash logs are kept.

    ``$XDG_DATA_HOME/alliopro`` on Linux and BSD, ``~/.alliopro/logs``
    elsewhere.
    """
    return _app_dir("data")


def get_stores_dir() -> Path:
    """Return the root holding one persistent store per cache generation."""
    path = get_cache_dir() / "stores"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _atomic_write(path: Path, text: str) -> None:
    """Replace *path* with *text*; readers see the old file or the new one."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# --- Global config ---


def config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Read ``config.json``; a missing file means all defaults.

    Raises:
        ConfigError: The file is not JSON or a value is out of range.
    """
    path = config_path()
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    _atomic_write(config_path(), config.model_dump_json(indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(cli_origin: Optional[str] = None) -> GlobalConfig:
    """Return the settings in effect for this invocation.

    ``--origin`` beats ``ALLIOPRO_ORIGIN``; both beat ``config.json``, which
    beats the model defaults.  ``ALLIOPRO_CACHE_NAME`` selects another
    generation tag.

    Raises:
        ConfigError: The file is invalid or an override is rejected by
            :class:`~alliopro.models.InterceptorConfig`.
    """
    config = load_global_config()
    overrides: dict[str, str] = {}

    env_origin = os.environ.get(ENV_ORIGIN)
    if env_origin:
        overrides["origin"] = env_origin
    env_cache_name = os.environ.get(ENV_CACHE_NAME)
    if env_cache_name:
        overrides["cache_name"] = env_cache_name
    if cli_origin is not None:
        overrides["origin"] = cli_origin

    if not overrides:
        return config

    data = config.interceptor.model_dump()
    data.update(overrides)
    try:
        config.interceptor = InterceptorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid interceptor override: {exc}") from exc
    return config
