"""Shared test fixtures for bmwid.

Provides an isolated config environment, a scripted fake of the GCDM
identity service served through :class:`httpx.MockTransport`, and ready-made
:class:`~bmwid.auth.identity.Identity` instances wired to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from bmwid.auth.identity import Identity
from bmwid.auth.settings_store import MemorySettingsStore
from bmwid.client.transport import Transport
from bmwid.output import OutputFormat, OutputManager, reset_output, set_output


NA_AUTH = "https://login.bmwusa.com/gcdm"


def form_of(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body into a flat dict."""
    parsed = parse_qs(request.content.decode("utf-8"), keep_blank_values=True)
    return {k: v[0] for k, v in parsed.items()}


class FakeGCDM:
    """Scripted identity service.

    Each endpoint answer is a callable taking the request and returning a
    response, so tests can swap one step without touching the others.
    Every request is recorded in :attr:`requests`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.credentials: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(
            200,
            json={"redirect_to": "redirect_uri=com.bmw.connected://oauth?authorization=AUTH1"},
        )
        self.authorization: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(
            302, headers={"Location": "com.bmw.connected://oauth?code=CODE1"}
        )
        self.code_token: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(
            200,
            json={"access_token": "AT1", "refresh_token": "RT1", "expires_in": 3600},
        )
        self.refresh_token: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(
            200,
            json={"access_token": "AT2", "refresh_token": "RT2", "expires_in": 3600},
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        form = form_of(request)
        path = request.url.path
        if path.endswith("/oauth/authenticate"):
            if "authorization" in form:
                return self.authorization(request)
            return self.credentials(request)
        if path.endswith("/oauth/token"):
            if form.get("grant_type") == "refresh_token":
                return self.refresh_token(request)
            return self.code_token(request)
        return httpx.Response(404, json={"error": "not_found"})

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def forms_to(self, suffix: str) -> list[dict[str, str]]:
        return [form_of(r) for r in self.requests_to(suffix)]


def json_error(
    error: Optional[str], description: Optional[str] = None, status: int = 400
) -> Callable[[httpx.Request], httpx.Response]:
    """Response factory for a provider error body."""
    body: dict[str, Any] = {}
    if error is not None:
        body["error"] = error
    if description is not None:
        body["error_description"] = description
    return lambda r: httpx.Response(status, json=body)


# ---------------------------------------------------------------------------
# Identity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gcdm() -> FakeGCDM:
    return FakeGCDM()


@pytest.fixture
def transport(gcdm: FakeGCDM) -> Transport:
    t = Transport(transport=httpx.MockTransport(gcdm.handle))
    yield t
    t.close()


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def identity(transport: Transport, store: MemorySettingsStore) -> Identity:
    """Identity for region ``na`` talking to the fake service."""
    return Identity("na", store=store, transport=transport)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG directories at *tmp_path* and clear ``BMWID_*`` variables."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("bmwid.config._is_xdg_platform", lambda: True)

    for var in [
        "BMWID_REGION",
        "BMWID_TIMEOUT",
        "BMWID_STORE",
        "BMWID_USERNAME",
        "BMWID_PASSWORD",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a quiet, plain output manager and drop it afterwards."""
    set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True))
    yield
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
