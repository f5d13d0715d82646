"""Typer application and CLI entry point for chartlink.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``auth``, ``tiles``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the Typer app. Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`chartlink.config`: Configuration resolution.
    :mod:`chartlink.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from chartlink import __version__
from chartlink.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="chartlink",
    help="Log in to the chart provider and fetch enroute chart tiles.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

_registered = False


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"chartlink {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth client id override."
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", help="Directory holding the saved login."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~chartlink.output.OutputManager` from CLI
    flags (falling back to ``output.format`` in the config file) and stores
    shared options in ``ctx.obj`` for the sub-commands.
    """
    from chartlink.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    set_output(
        OutputManager(
            format=fmt,
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
        )
    )

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose
    ctx.obj["client_id"] = client_id
    ctx.obj["cache_dir"] = cache_dir


def _configured_format():  # noqa: ANN202
    """Return the output format saved in the config file, ``AUTO`` if unusable."""
    from chartlink.config import load_global_config
    from chartlink.exceptions import ConfigError
    from chartlink.output import OutputFormat

    try:
        return OutputFormat(load_global_config().output.format)
    except (ConfigError, ValueError):
        return OutputFormat.AUTO


def register_commands() -> None:
    """Attach the built-in sub-command groups to :data:`app`. Idempotent."""
    global _registered
    if _registered:
        return

    from chartlink.commands.auth import auth_app
    from chartlink.commands.config import config_app
    from chartlink.commands.tiles import tiles_app

    app.add_typer(auth_app, name="auth", help="Log in and manage the saved login.")
    app.add_typer(tiles_app, name="tiles", help="Locate, name and download chart tiles.")
    app.add_typer(config_app, name="config", help="Configuration management.")
    _registered = True


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from chartlink.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``chartlink`` console script.

    Unhandled :class:`~chartlink.exceptions.ChartlinkError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce a
    crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from chartlink.exceptions import ChartlinkError
        from chartlink.output import error

        if isinstance(exc, ChartlinkError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
