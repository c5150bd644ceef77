"""Typer application and CLI entry point for ocalogin.

This module wires together the top-level Typer application and registers
the built-in sub-command groups (``auth``, ``catalog``, ``config``,
``callback``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~ocalogin.exceptions.OcaLoginError` exits with the error's exit
code; anything else is written to a crash log under the data directory.

See Also:
    :mod:`ocalogin.config`: Configuration resolution used in :func:`main_callback`.
    :mod:`ocalogin.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from ocalogin import __version__
from ocalogin.commands.auth import auth_app
from ocalogin.commands.callback import callback_app
from ocalogin.commands.catalog import catalog_app
from ocalogin.commands.config import config_app
from ocalogin.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="ocalogin",
    help="Sign in to Oracle Code Assist through the browser.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(auth_app, name="auth", help="Sign-in and session management.")
app.add_typer(catalog_app, name="catalog", help="Model catalog and knowledge bases.")
app.add_typer(config_app, name="config", help="Configuration management.")
app.add_typer(callback_app, name="callback", help="Local OAuth callback listener.")

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"ocalogin {__version__}")
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
    backend_url: Optional[str] = typer.Option(
        None, "--backend-url", help="Backend address (overrides OCALOGIN_BACKEND_URL)."
    ),
    callback_base_url: Optional[str] = typer.Option(
        None,
        "--callback-base-url",
        help="External callback the local listener redirects to.",
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
    no_input: bool = typer.Option(
        False, "--no-input", help="Disable interactive prompts."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Resolves the effective configuration, initialises the global
    :class:`~ocalogin.output.OutputManager` and logging, and stores shared
    options in the Typer context so sub-commands can read them via
    ``ctx.obj``.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        backend_url: Backend address override (highest precedence).
        callback_base_url: Redirect base override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output and logging.
        force: Skip interactive confirmations.
        no_input: Disable all interactive prompts.
    """
    from ocalogin.config import resolve_config
    from ocalogin.exceptions import ConfigError
    from ocalogin.models import GlobalConfig
    from ocalogin.output import OutputFormat, OutputManager, set_output, warning

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    try:
        config = resolve_config(
            cli_backend_url=backend_url,
            cli_callback_base_url=callback_base_url,
            cli_format=fmt.value if fmt != OutputFormat.AUTO else None,
        )
    except ConfigError as exc:
        # "config reset" must still work on a broken file.
        if ctx.invoked_subcommand != "config":
            raise
        warning(str(exc))
        config = GlobalConfig()
    if fmt == OutputFormat.AUTO and config.output.format != OutputFormat.AUTO.value:
        try:
            fmt = OutputFormat(config.output.format)
        except ValueError:
            pass

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet))
    _setup_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["force"] = force
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose


def _setup_logging(verbose: bool) -> None:
    """Route ``ocalogin.*`` log records to stderr.

    Debug records are shown with ``--verbose``; otherwise only warnings
    and errors.
    """
    logger = logging.getLogger("ocalogin")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from ocalogin.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``ocalogin`` console script.

    Unhandled :class:`~ocalogin.exceptions.OcaLoginError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
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
        from ocalogin.exceptions import OcaLoginError
        from ocalogin.output import error

        if isinstance(exc, OcaLoginError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
