"""Typer application and CLI entry point for keysmith.

This module wires together the top-level Typer application and registers
the sub-commands (``init``, ``plan``, ``apply``, ``destroy``, ``apikey``,
``state``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands, and
invokes the Typer app. Unhandled exceptions are written to a crash log
under the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from keysmith import __version__
from keysmith.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="keysmith",
    help="Declaratively manage cloud API keys.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"keysmith {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile name to use."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the control-plane URL."),
    state_file: Optional[str] = typer.Option(None, "--state-file", "-s", help="State file path."),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~keysmith.output.OutputManager` and the
    log bridge from CLI flags, and stores shared options in ``ctx.obj``.
    """
    from keysmith.output import OutputManager, install_log_handler, resolve_format, set_output

    fmt = resolve_format(json_output, plain_output, _configured_format())
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    install_log_handler(verbose=verbose)

    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile
    ctx.obj["base_url"] = base_url
    ctx.obj["state_file"] = state_file
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _configured_format() -> str:
    """The ``output.format`` default from the global config file."""
    from keysmith.config import load_global_config
    from keysmith.exceptions import ConfigError

    try:
        return load_global_config().output.format
    except ConfigError:
        # the command reports a broken config file when it loads it
        return "auto"


def _register_commands() -> None:
    from keysmith.commands.apikey import apikey_app
    from keysmith.commands.config import config_app
    from keysmith.commands.init import init_command
    from keysmith.commands.plan import apply_command, destroy_command, plan_command
    from keysmith.commands.state import state_app

    app.command("init")(init_command)
    app.command("plan")(plan_command)
    app.command("apply")(apply_command)
    app.command("destroy")(destroy_command)
    app.add_typer(apikey_app, name="apikey", help="One-off API key operations by id.")
    app.add_typer(state_app, name="state", help="Inspect and edit the local state file.")
    app.add_typer(config_app, name="config", help="Configuration management.")


_register_commands()


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from keysmith.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``keysmith`` console script.

    :class:`~keysmith.exceptions.KeysmithError` instances that escape a
    command cause a clean exit with the error's ``exit_code``. All other
    exceptions produce a crash log and a generic failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from keysmith.exceptions import KeysmithError
        from keysmith.output import error

        if isinstance(exc, KeysmithError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
