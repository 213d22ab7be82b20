"""Terminal output for keysmith.

Key records, plans, and state listings go to stdout; progress, warnings,
and errors go to stderr, so ``keysmith --json apikey get ... | jq`` always
sees clean JSON. Records render as a highlighted JSON block on a colour
terminal, as ``field<TAB>value`` lines when piped, or as JSON with
``--json``.

Library modules never print. They log through :mod:`logging`, and
:class:`OutputHandler` forwards those records to the active
:class:`OutputManager`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text


class OutputFormat(str, Enum):
    """How stdout data is rendered. ``AUTO`` picks ``RICH`` on a colour TTY."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# kind -> (prefix, prefix style, message style, hidden by --quiet)
_DIAGNOSTICS = {
    "info": ("", "", "", True),
    "success": ("", "", "green", True),
    "suggest": ("\u2192 ", "dim", "dim", True),
    "warning": ("Warning: ", "yellow", "", False),
    "error": ("Error: ", "bold red", "", False),
    "debug": ("[debug] ", "dim", "dim", False),
}


class OutputManager:
    """Renders data to stdout and diagnostics to stderr.

    Args:
        format: Data format; ``AUTO`` is resolved once, here.
        no_color: Disable colour and markup (also implied by ``NO_COLOR``
            and ``TERM=dumb``).
        quiet: Hide info, success, and suggestion messages.
        verbose: Show debug messages.
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
            format = OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
        self._format = format
        self._stdout = Console(
            file=sys.stdout, no_color=self._no_color, force_terminal=format == OutputFormat.RICH
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # -- stdout ------------------------------------------------------------

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_record(self, record: Any) -> None:
        """Print one key record (or any JSON-able value)."""
        text = json.dumps(record, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.JSON:
            self.print_data(text)
        elif self._format == OutputFormat.RICH:
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))
        elif isinstance(record, dict):
            for field, value in record.items():
                self.print_data(f"{field}\t{'' if value is None else value}")
        elif isinstance(record, list):
            for item in record:
                values = item.values() if isinstance(item, dict) else [item]
                self.print_data("\t".join(str(v) for v in values))
        else:
            self.print_data(str(record))

    def print_table(
        self, headers: list[str], rows: list[list[str]], title: Optional[str] = None
    ) -> None:
        """Print rows as a rich table, TSV with a header line, or a JSON array of objects."""
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps([dict(zip(headers, row)) for row in rows], indent=2))
        elif self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*(escape(cell) for cell in row))
            self._stdout.print(table)

    # -- stderr ------------------------------------------------------------

    def _diagnostic(self, kind: str, message: str) -> None:
        prefix, prefix_style, message_style, quietable = _DIAGNOSTICS[kind]
        if (quietable and self._quiet) or (kind == "debug" and not self._verbose):
            return
        if self._no_color:
            print(f"{prefix}{message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(Text.assemble((prefix, prefix_style), (message, message_style)))

    def info(self, message: str) -> None:
        self._diagnostic("info", message)

    def success(self, message: str) -> None:
        self._diagnostic("success", message)

    def suggest(self, message: str) -> None:
        self._diagnostic("suggest", message)

    def warning(self, message: str) -> None:
        """Never hidden by ``--quiet``."""
        self._diagnostic("warning", message)

    def error(self, message: str) -> None:
        """Never hidden by ``--quiet``."""
        self._diagnostic("error", message)

    def debug(self, message: str) -> None:
        self._diagnostic("debug", message)


def resolve_format(json_flag: bool, plain_flag: bool, configured: str = "auto") -> OutputFormat:
    """Pick the data format: ``--json``, then ``--plain``, then the configured default."""
    if json_flag:
        return OutputFormat.JSON
    if plain_flag:
        return OutputFormat.PLAIN
    return OutputFormat(configured)


class OutputHandler(logging.Handler):
    """Forward ``keysmith.*`` log records to the active :class:`OutputManager`.

    Records at WARNING and above print as warnings; the rest as debug.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            if record.levelno >= logging.WARNING:
                get_output().warning(message)
            else:
                get_output().debug(message)
        except Exception:
            self.handleError(record)


def install_log_handler(verbose: bool = False) -> OutputHandler:
    """Attach one :class:`OutputHandler` to the ``keysmith`` logger and set its level."""
    logger = logging.getLogger("keysmith")
    handler = next((h for h in logger.handlers if isinstance(h, OutputHandler)), None)
    if handler is None:
        handler = OutputHandler()
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return handler


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# -- process-wide instance, installed by the root callback -----------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def print_record(record: Any) -> None:
    get_output().print_record(record)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)
