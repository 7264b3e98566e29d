"""Terminal rendering for the ``alliopro`` command line.

Fetched bodies, config dumps and store listings are *data* and go to
stdout; install progress, errors and hints are *diagnostics* and go to
stderr, so ``alliopro --json sw fetch /data.json | jq`` keeps working.

Rendering style follows the resolved :class:`OutputFormat`.  Colour is
turned off by ``--no-color``, a set ``NO_COLOR`` variable or ``TERM=dumb``.

:func:`~alliopro.app.main_callback` builds one :class:`OutputManager` per
invocation and installs it with :func:`set_output`; commands call the
module-level shortcuts.  Library code logs through :mod:`logging` instead,
and :func:`configure_logging` sends those records to the stderr console.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

_LEXERS = {
    "text/html": "html",
    "text/css": "css",
    "application/javascript": "javascript",
    "text/javascript": "javascript",
}


class OutputFormat(str, Enum):
    """How data written to stdout is rendered.

    ``AUTO`` becomes ``RICH`` on a colour-capable terminal and ``PLAIN``
    everywhere else (pipes, files, ``NO_COLOR``).
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Writes data to stdout and diagnostics to stderr for one CLI run.

    Args:
        format: Rendering for stdout data.
        no_color: Strip colour and markup from both streams.
        quiet: Drop informational diagnostics; errors still show.
        verbose: Show ``debug`` diagnostics.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            rich = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich else OutputFormat.PLAIN
        self._format = format

        # Bodies are printed verbatim, so Rich's repr highlighter stays off.
        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            highlight=False,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console used for diagnostics; shared with the log handler."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any, content_type: str = "application/json") -> None:
        """Render a response body or document on stdout.

        *data* may already be decoded (dict, list) or still be text; text
        that parses as JSON is treated as JSON.  In rich mode *content_type*
        picks the syntax lexer for HTML, CSS and JavaScript bodies.
        """
        if isinstance(data, str):
            data = _maybe_json(data)
        if self._format == OutputFormat.JSON:
            self._render_json(data)
        elif self._format == OutputFormat.PLAIN:
            self._render_plain(data)
        else:
            self._render_rich(data, content_type)

    def print_data(self, text: str) -> None:
        """Write *text* and a newline to stdout unformatted."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows as a Rich table, a JSON array of objects or TSV lines."""
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
            return
        if self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return
        table = Table(title=title, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        self._diagnostic(message)

    def success(self, message: str) -> None:
        self._diagnostic(message, style="green")

    def suggest(self, message: str) -> None:
        """Hint at the next command to run."""
        self._diagnostic(f"→ {message}", style="dim")

    def error(self, message: str) -> None:
        """Report a failure; shown even with ``--quiet``."""
        self._diagnostic(message, label="Error:", style="bold red", always=True)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diagnostic(message, label="[debug]", style="dim", always=True)

    def _diagnostic(
        self,
        message: str,
        label: str = "",
        style: str = "",
        always: bool = False,
    ) -> None:
        if self._quiet and not always:
            return
        text = f"{label} {message}" if label else message
        if self._no_color:
            print(text, file=sys.stderr, flush=True)
        else:
            self._stderr.print(text, style=style or None, markup=False, highlight=False)

    # ------------------------------------------------------------------ #
    # Renderers
    # ------------------------------------------------------------------ #

    def _render_json(self, data: Any) -> None:
        if isinstance(data, str):
            self.print_data(data)
        else:
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _render_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            lines = [f"{key}\t{value}" for key, value in data.items()]
        elif isinstance(data, list):
            lines = [
                "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
                for item in data
            ]
        else:
            lines = [str(data)]
        for line in lines:
            self.print_data(line)

    def _render_rich(self, data: Any, content_type: str) -> None:
        if isinstance(data, (dict, list)):
            body = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(body, "json", theme="monokai", word_wrap=True))
            return
        text = str(data)
        lexer = _lexer_for(content_type)
        if lexer is None:
            self._stdout.print(text, markup=False)
        else:
            self._stdout.print(Syntax(text, lexer, theme="monokai", word_wrap=True))


def _maybe_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` (set to anything, even empty) or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def _lexer_for(content_type: str) -> Optional[str]:
    mime = content_type.split(";", 1)[0].strip().lower()
    return _LEXERS.get(mime)


def configure_logging(verbose: bool, console: Optional[Console] = None) -> None:
    """Attach a single :class:`RichHandler` to the ``alliopro`` logger.

    With *verbose* the logger passes DEBUG records (store writes, lifecycle
    transitions, fallbacks); otherwise WARNING and above.
    """
    logger = logging.getLogger("alliopro")
    for stale in [h for h in logger.handlers if isinstance(h, RichHandler)]:
        logger.removeHandler(stale)
    logger.addHandler(
        RichHandler(console=console or Console(stderr=True), show_time=False, show_path=False)
    )
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


# ------------------------------------------------------------------ #
# Process-wide manager and shortcuts
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, or a default one when none is set."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager (test isolation)."""
    global _output
    _output = None


def format_response(data: Any, content_type: str = "application/json") -> None:
    get_output().format_response(data, content_type)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
