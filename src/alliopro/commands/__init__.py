"""Built-in CLI sub-commands for alliopro.

* :mod:`~alliopro.commands.interceptor` -- install generations, fetch through
  the interceptor and manage its stores (``alliopro sw``).
* :mod:`~alliopro.commands.upstream` -- memoized upstream JSON lookups
  (``alliopro upstream``).
* :mod:`~alliopro.commands.config` -- view and modify global settings.

Each module exports a :class:`typer.Typer` sub-application registered on the
root app in :mod:`alliopro.app`.
"""
