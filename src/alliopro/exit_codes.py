"""Numeric process exit codes used by the ``alliopro`` CLI.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~alliopro.exceptions.AllioproError` subclass, so
shell wrappers can tell failure classes apart without parsing stderr.

Example::

    $ alliopro sw fetch http://localhost:3000/data.json
    $ echo $?
    4   # EXIT_NOT_FOUND -- neither the network nor the cache answered
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_LIFECYCLE_ERROR = 3
"""An interceptor lifecycle transition was attempted from the wrong state."""

EXIT_NOT_FOUND = 4
"""A fetch produced no response from either the network or the cache."""

EXIT_UPSTREAM_ERROR = 5
"""An upstream lookup returned an error status or an undecodable body."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PRECACHE_ERROR = 7
"""Installing a cache generation failed and the generation is not ready."""
