"""Shared test fixtures for alliopro.

Provides isolated config/cache directories, a storage root on ``tmp_path``,
a fake monotonic clock and helpers for building mock HTTP sites.  These
fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from alliopro.interceptor import CacheStorage
from alliopro.models import DEFAULT_ASSETS, InterceptorConfig
from alliopro.output import reset_output


ORIGIN = "http://allio.test"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Isolated directories
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG base directory at ``tmp_path`` and clear overrides."""
    monkeypatch.setattr("alliopro.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("ALLIOPRO_ORIGIN", raising=False)
    monkeypatch.delenv("ALLIOPRO_CACHE_NAME", raising=False)
    return tmp_path


@pytest.fixture
def storage(tmp_path: Path) -> CacheStorage:
    """A storage root under ``tmp_path``, closed after the test."""
    root = CacheStorage(tmp_path / "stores")
    yield root
    root.close()


@pytest.fixture
def interceptor_config() -> InterceptorConfig:
    return InterceptorConfig(origin=ORIGIN, fetch_timeout=1)


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Mock sites
# ---------------------------------------------------------------------------


def asset_body(path: str) -> bytes:
    """Deterministic body served for *path* by :func:`site_handler`."""
    return f"asset {path}".encode()


def site_handler(
    down: bool = False,
    failing: tuple[str, ...] = (),
    status_for: Optional[dict[str, int]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Build a MockTransport handler serving the default asset manifest.

    Args:
        down: Raise ``httpx.ConnectError`` for every request.
        failing: Paths that raise ``httpx.ConnectError``.
        status_for: Paths answered with a specific status code.
    """
    statuses = status_for or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if down or path in failing:
            raise httpx.ConnectError("connection refused", request=request)
        if path in statuses:
            return httpx.Response(statuses[path], content=b"error")
        if path in DEFAULT_ASSETS:
            return httpx.Response(
                200, headers={"content-type": "text/plain"}, content=asset_body(path)
            )
        if path == "/data.json":
            return httpx.Response(200, json={"items": [1, 2, 3]})
        return httpx.Response(404, content=b"not found")

    return handler


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose network is *handler*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def site() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    """Factory for mock site handlers; see :func:`site_handler`."""
    return site_handler


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for AsyncClients backed by a mock handler."""
    return mock_client
