"""Config commands -- view and modify ``config.json``.

Settings control the default region, HTTP timeout, TLS verification,
refresh lead time and the token store location.
"""

from __future__ import annotations

import typer

from bmwid.exceptions import BmwidError
from bmwid.output import error, info, print_record, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration (file, environment and defaults merged).

    Example::

        bmwid config show --json
    """
    from bmwid.config import get_config_dir, resolve_settings

    try:
        settings = resolve_settings()
    except BmwidError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    print_record(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'region' or 'timeout'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Example::

        bmwid config set region na
        bmwid config set refresh_lead_minutes 10
    """
    from bmwid.config import update_settings

    try:
        settings = update_settings(key, value)
    except BmwidError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Set {key} = {getattr(settings, key)}")
