"""Typer application and CLI entry point for bmwid.

The root callback configures output and logging and stores the shared
``--region`` / ``--timeout`` overrides in ``ctx.obj``.  :func:`main` is the
console-script entry point declared in ``pyproject.toml``.

See Also:
    :mod:`bmwid.commands.auth`: ``login``, ``token``, ``logout``.
    :mod:`bmwid.commands.config`: the ``config`` group.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Optional

import typer

from bmwid import __version__
from bmwid.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="bmwid",
    help="Log in to BMW ConnectedDrive and manage access tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"bmwid {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Send ``bmwid`` debug logs to stderr when ``--verbose`` is active."""
    logger = logging.getLogger("bmwid")
    if verbose:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[debug] %(name)s: %(message)s"))
        logger.handlers[:] = [handler]
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.WARNING)


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
    region: Optional[str] = typer.Option(
        None, "--region", "-r", help="Region code (na, row). Overrides config."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="HTTP timeout in seconds."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command."""
    from bmwid.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["region"] = region
    ctx.obj["timeout"] = timeout
    ctx.obj["verbose"] = verbose


@app.command("regions")
def regions_command() -> None:
    """List the built-in regions."""
    from bmwid.output import print_table
    from bmwid.regions import REGIONS

    rows = [[code, p.auth_uri, p.client_id] for code, p in sorted(REGIONS.items())]
    print_table(["Region", "Identity service", "Client ID"], rows, title="Regions")


from bmwid.commands.auth import login_command, logout_command, token_command  # noqa: E402
from bmwid.commands.config import config_app  # noqa: E402

app.command("login")(login_command)
app.command("token")(token_command)
app.command("logout")(logout_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``bmwid`` console script.

    :class:`~bmwid.exceptions.BmwidError` instances escaping a command exit
    with the error's ``exit_code``; anything else exits with
    :data:`~bmwid.exit_codes.EXIT_GENERIC_FAILURE`.
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
        from bmwid.exceptions import BmwidError
        from bmwid.output import error

        error(str(exc))
        if isinstance(exc, BmwidError):
            sys.exit(exc.exit_code)
        sys.exit(EXIT_GENERIC_FAILURE)
