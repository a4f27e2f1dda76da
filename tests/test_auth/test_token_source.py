"""Tests for the refreshing token source and BearerAuth."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from bmwid.auth.token_source import BearerAuth, RefreshingTokenSource, SourceState
from bmwid.exceptions import CredentialError, PersistenceError
from bmwid.models import Token


def _token(access: str, minutes: float) -> Token:
    return Token(
        access_token=access,
        refresh_token=f"R-{access}",
        expiry=datetime.now(timezone.utc) + timedelta(minutes=minutes),
    )


class CountingRefresher:
    def __init__(self, result: Token | Exception, gate: threading.Event | None = None) -> None:
        self.result = result
        self.gate = gate
        self.calls: list[Token] = []

    def __call__(self, token: Token) -> Token:
        self.calls.append(token)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestRefreshingTokenSource:
    def test_returns_current_token_outside_lead_time(self) -> None:
        refresher = CountingRefresher(_token("NEW", 60))
        source = RefreshingTokenSource(_token("AT1", 60), refresher)

        assert source.access_token() == "AT1"
        assert source.access_token() == "AT1"
        assert refresher.calls == []
        assert source.state is SourceState.VALID

    def test_refreshes_inside_lead_time(self) -> None:
        refresher = CountingRefresher(_token("AT2", 60))
        source = RefreshingTokenSource(_token("AT1", 14), refresher)

        assert source.access_token() == "AT2"
        assert [t.access_token for t in refresher.calls] == ["AT1"]
        assert source.peek().access_token == "AT2"

    def test_custom_expiry_delta(self) -> None:
        refresher = CountingRefresher(_token("AT2", 60))
        source = RefreshingTokenSource(
            _token("AT1", 14), refresher, expiry_delta=timedelta(minutes=5)
        )
        assert source.access_token() == "AT1"
        assert refresher.calls == []

    def test_token_without_expiry_never_refreshes(self) -> None:
        refresher = CountingRefresher(_token("AT2", 60))
        source = RefreshingTokenSource(Token(access_token="AT1"), refresher)
        assert source.access_token() == "AT1"
        assert refresher.calls == []

    def test_zero_expires_in_does_not_force_refresh(self) -> None:
        refresher = CountingRefresher(_token("AT2", 60))
        token = Token.from_response({"access_token": "AT1", "expires_in": 0})
        source = RefreshingTokenSource(token, refresher)

        assert source.access_token() == "AT1"
        assert source.access_token() == "AT1"
        assert refresher.calls == []

    def test_failure_keeps_old_token_and_allows_retry(self) -> None:
        refresher = CountingRefresher(CredentialError("revoked", error="invalid_grant"))
        source = RefreshingTokenSource(_token("AT1", 1), refresher)

        with pytest.raises(CredentialError):
            source.token()
        assert source.state is SourceState.FAILED
        assert source.peek().access_token == "AT1"

        refresher.result = _token("AT2", 60)
        assert source.access_token() == "AT2"
        assert len(refresher.calls) == 2
        assert source.state is SourceState.VALID

    def test_persistence_failure_still_serves_new_token(self) -> None:
        fresh = _token("AT2", 60)
        refresher = CountingRefresher(PersistenceError("disk full", token=fresh))
        source = RefreshingTokenSource(_token("AT1", 1), refresher)

        with pytest.raises(PersistenceError):
            source.token()
        assert source.state is SourceState.VALID
        assert source.access_token() == "AT2"
        assert len(refresher.calls) == 1

    def test_concurrent_callers_share_one_refresh(self) -> None:
        gate = threading.Event()
        refresher = CountingRefresher(_token("AT2", 60), gate=gate)
        source = RefreshingTokenSource(_token("AT1", 1), refresher)
        results: list[str] = []

        def worker() -> None:
            results.append(source.access_token())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        time.sleep(0.2)
        gate.set()
        for t in threads:
            t.join(timeout=5)

        assert len(refresher.calls) == 1
        assert results == ["AT2"] * 8

    def test_concurrent_callers_share_refresh_failure(self) -> None:
        gate = threading.Event()
        refresher = CountingRefresher(CredentialError("revoked"), gate=gate)
        source = RefreshingTokenSource(_token("AT1", 1), refresher)
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                source.token()
            except CredentialError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        time.sleep(0.2)
        gate.set()
        for t in threads:
            t.join(timeout=5)

        assert len(refresher.calls) == 1
        assert len(errors) == 6


class TestBearerAuth:
    def test_sets_authorization_header(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        token = Token(access_token="AT1", token_type="bearer")
        source = RefreshingTokenSource(token, CountingRefresher(token))
        with httpx.Client(transport=httpx.MockTransport(handler), auth=BearerAuth(source)) as client:
            client.get("https://cocoapi.bmwgroup.us/eadrax-vcs/v4/vehicles")

        assert seen == ["Bearer AT1"]
