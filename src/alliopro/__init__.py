"""alliopro -- caching core of the Allio Pro web application.

The package holds the two caches the application relies on:

* a bounded, time-limited in-process cache that memoizes expensive
  server-side lookups (:mod:`alliopro.cache`, consumed by
  :mod:`alliopro.client`), and
* a request interceptor that serves the site network-first and falls back
  to persistent per-origin storage when the network is unreachable
  (:mod:`alliopro.interceptor`).

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and saving.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
