"""Exception hierarchy for alliopro.

All exceptions inherit from :class:`AllioproError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`alliopro.exit_codes`.
The CLI entry point in :func:`alliopro.app.main` catches ``AllioproError``
and exits with the matching code.

Neither cache raises on a miss: :class:`~alliopro.cache.BoundedTTLCache`
returns ``None`` and the interceptor's fetch path returns ``None`` when both
the network and the store fail.  The exceptions below cover the remaining
failure modes.

Subclass hierarchy::

    AllioproError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- ConfigError         (exit 1)
    +-- LifecycleError      (exit 3)
    +-- NotFoundError       (exit 4)
    +-- UpstreamError       (exit 5)
    +-- ConnectionError_    (exit 6)
    +-- PrecacheError       (exit 7)
"""

from __future__ import annotations

from alliopro.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LIFECYCLE_ERROR,
    EXIT_NOT_FOUND,
    EXIT_PRECACHE_ERROR,
    EXIT_UPSTREAM_ERROR,
)


class AllioproError(Exception):
    """Base exception for all alliopro errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(AllioproError):
    """Raised for invalid arguments, such as an unusable store name."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(AllioproError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


class LifecycleError(AllioproError):
    """Raised when an interceptor worker is driven out of order.

    For example activating a worker that never finished installing, or
    dispatching a fetch to a worker that is not active.
    """

    exit_code = EXIT_LIFECYCLE_ERROR


class NotFoundError(AllioproError):
    """Raised by the CLI when a fetch yields no response or a store is missing."""

    exit_code = EXIT_NOT_FOUND


class UpstreamError(AllioproError):
    """Raised when an upstream lookup answers with an error or garbage.

    Args:
        message: Human-readable error description.
        status_code: The upstream HTTP status, when one was received.
    """

    exit_code = EXIT_UPSTREAM_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionError_(AllioproError):
    """Raised on network-level failures once every retry is exhausted.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class PrecacheError(AllioproError):
    """Raised when Install cannot fetch every manifest asset.

    Precaching is all-or-nothing: when this is raised nothing was written
    and the generation is not ready.

    Args:
        message: Human-readable error description.
        failed: The manifest paths that could not be fetched.
    """

    exit_code = EXIT_PRECACHE_ERROR

    def __init__(self, message: str, failed: list[str] | None = None):
        super().__init__(message)
        self.failed = list(failed or [])
