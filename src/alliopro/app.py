"""Root Typer application and the ``alliopro`` console entry point.

Sub-command groups:

* ``sw`` -- install, fetch through and inspect interceptor generations.
* ``upstream`` -- memoized upstream JSON lookups.
* ``config`` -- the user configuration file.

:func:`main` turns :class:`~alliopro.exceptions.AllioproError` into its exit
code.  Anything else is a bug: the traceback goes to
``<data dir>/logs/crash-<timestamp>.log`` and the process exits with 1.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from alliopro import __version__
from alliopro.commands.config import config_app
from alliopro.commands.interceptor import sw_app
from alliopro.commands.upstream import upstream_app
from alliopro.exceptions import AllioproError
from alliopro.exit_codes import EXIT_GENERIC_FAILURE

EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="alliopro",
    help="Manage the Allio Pro caches.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.add_typer(sw_app, name="sw", help="Interceptor cache lifecycle.")
app.add_typer(upstream_app, name="upstream", help="Memoized upstream lookups.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"alliopro {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Origin served by the interceptor."
    ),
    json_output: bool = typer.Option(False, "--json", help="Render data as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Render data as plain text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print data and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics."),
) -> None:
    """Set up output and logging; keep ``--origin`` for the sub-commands."""
    from alliopro.output import OutputFormat, OutputManager, configure_logging, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(verbose, output.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj.update(origin=origin, verbose=verbose)


def _setup_signal_handlers() -> None:
    def _interrupted(signum: int, frame: Any) -> None:  # noqa: ANN401
        _cancelled()

    signal.signal(signal.SIGINT, _interrupted)


def _cancelled() -> None:
    sys.stderr.write("\nCancelled.\n")
    sys.exit(EXIT_INTERRUPTED)


def _write_crash_log(exc: BaseException) -> Path:
    """Dump the traceback of *exc* under the data directory."""
    from alliopro.config import get_data_dir

    logs = get_data_dir() / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    path = logs / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return path


def main() -> None:
    """Entry point of the ``alliopro`` console script; always exits."""
    from alliopro.output import error

    _setup_signal_handlers()
    try:
        app()
    except KeyboardInterrupt:
        _cancelled()
    except AllioproError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        error(f"Unexpected error. Debug log: {_write_crash_log(exc)}")
        sys.exit(EXIT_GENERIC_FAILURE)
