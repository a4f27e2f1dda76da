"""Session commands -- log in, print a token, log out.

These are registered directly on the root app::

    bmwid login --username alice@example.com     # prompts for password/captcha
    bmwid token --username alice@example.com     # prints a valid access token
    bmwid logout --username alice@example.com

Region and timeout come from the root ``--region`` / ``--timeout`` options,
the ``BMWID_*`` environment variables or ``config.json``, in that order.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional

import typer

from bmwid.auth.identity import Identity
from bmwid.auth.settings_store import FileSettingsStore
from bmwid.client.transport import Transport
from bmwid.config import resolve_settings
from bmwid.exceptions import BmwidError, PersistenceError
from bmwid.models import Token
from bmwid.output import (
    OutputFormat,
    error,
    get_output,
    info,
    print_data,
    print_record,
    success,
    suggest,
    warning,
)


@contextmanager
def _open_identity(ctx: typer.Context, username: str) -> Iterator[Identity]:
    """Build an :class:`Identity` from the effective settings."""
    obj = ctx.obj or {}
    settings = resolve_settings(
        cli_region=obj.get("region"), cli_timeout=obj.get("timeout")
    )
    store = (
        FileSettingsStore(Path(settings.store_path))
        if settings.store_path
        else FileSettingsStore()
    )
    transport = Transport(timeout=settings.timeout, verify_ssl=settings.verify_ssl)
    try:
        yield Identity(
            settings.region,
            store=store,
            transport=transport,
            username=username,
            expiry_delta=timedelta(minutes=settings.refresh_lead_minutes),
        )
    finally:
        transport.close()


def _token_record(token: Token) -> dict[str, Optional[str]]:
    return {
        "access_token": token.access_token,
        "token_type": token.token_type,
        "expiry": token.expiry.isoformat() if token.expiry else None,
    }


def _emit_token(token: Token) -> None:
    if get_output().format == OutputFormat.JSON:
        print_record(_token_record(token))
    else:
        print_data(token.access_token)


def login_command(
    ctx: typer.Context,
    username: Optional[str] = typer.Option(
        None, "--username", "-u", envvar="BMWID_USERNAME", help="ConnectedDrive account."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="BMWID_PASSWORD", help="Account password."
    ),
    captcha: Optional[str] = typer.Option(
        None, "--captcha", help="hCaptcha token solved for the login page."
    ),
    show_token: bool = typer.Option(
        False, "--show-token", help="Print the access token to stdout."
    ),
) -> None:
    """Log in and store a refreshable token.

    A stored token for the user is refreshed first; the CAPTCHA token is
    only requested when a full login is needed.

    Example::

        bmwid --region na login -u alice@example.com
    """
    try:
        if not username:
            username = typer.prompt("Username")
        if not password:
            password = typer.prompt("Password", hide_input=True)

        with _open_identity(ctx, username) as identity:
            if captcha is None and identity.store.get(identity.settings_key()) is None:
                captcha = typer.prompt("hCaptcha token")
            source = identity.login(username, password, captcha or "")
            region = identity.region.code
    except PersistenceError as exc:
        warning(f"Logged in, but the token was not saved: {exc}")
        if show_token and exc.token is not None:
            _emit_token(exc.token)
        raise typer.Exit(code=exc.exit_code) from None
    except BmwidError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    token = source.peek()
    success(f"Logged in as {username} ({region}).")
    if token.expiry:
        info(f"Access token valid until {token.expiry.isoformat()}")
    if show_token:
        _emit_token(token)
    else:
        suggest(f"Get a token: bmwid token -u {username}")


def token_command(
    ctx: typer.Context,
    username: str = typer.Option(
        ..., "--username", "-u", envvar="BMWID_USERNAME", help="ConnectedDrive account."
    ),
) -> None:
    """Print a valid access token, refreshing the stored one if needed.

    Example::

        curl -H "Authorization: Bearer $(bmwid token -u alice@example.com)" ...
    """
    try:
        with _open_identity(ctx, username) as identity:
            source = identity.resume()
            if source is None:
                error(f"No stored token for {username}.")
                suggest(f"Log in first: bmwid login -u {username}")
                raise typer.Exit(code=2)
            token = source.token()
    except PersistenceError as exc:
        warning(f"Token refreshed, but not saved: {exc}")
        if exc.token is None:
            raise typer.Exit(code=exc.exit_code) from None
        token = exc.token
    except BmwidError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    _emit_token(token)


def logout_command(
    ctx: typer.Context,
    username: str = typer.Option(
        ..., "--username", "-u", envvar="BMWID_USERNAME", help="ConnectedDrive account."
    ),
) -> None:
    """Forget the stored token for a user."""
    try:
        with _open_identity(ctx, username) as identity:
            removed = identity.logout()
    except BmwidError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if removed:
        success(f"Removed stored token for {username}.")
    else:
        info(f"No stored token for {username}.")
