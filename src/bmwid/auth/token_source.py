"""Self-refreshing access token handle.

:class:`RefreshingTokenSource` is what :meth:`~bmwid.auth.identity.Identity.login`
returns.  It hands out the current :class:`~bmwid.models.Token` until a lead
time before expiry (15 minutes by default) and then refreshes it through a
callback.  The handle is a small state machine::

    VALID --(inside lead time)--> REFRESHING --ok--> VALID
                                       |
                                       +--error--> FAILED --(next call)--> REFRESHING

Only one thread performs a refresh; threads arriving while it is in flight
wait on a condition variable and receive the same outcome, token or error.

:class:`BearerAuth` plugs a source into any :class:`httpx.Client`.
"""

from __future__ import annotations

import enum
import logging
import threading
from datetime import timedelta
from typing import Callable, Generator, Optional

import httpx

from bmwid.exceptions import PersistenceError
from bmwid.models import Token

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DELTA = timedelta(minutes=15)

Refresher = Callable[[Token], Token]


class SourceState(str, enum.Enum):
    VALID = "valid"
    REFRESHING = "refreshing"
    FAILED = "failed"


class RefreshingTokenSource:
    """Thread-safe token handle with single-flight refresh.

    Args:
        token: The initial token.
        refresher: Called with the current token when it needs renewing;
            must return the replacement (and persist it, if desired).
        expiry_delta: Refresh this long before :attr:`Token.expiry`.
    """

    def __init__(
        self,
        token: Token,
        refresher: Refresher,
        expiry_delta: timedelta = DEFAULT_EXPIRY_DELTA,
    ) -> None:
        self._token = token
        self._refresher = refresher
        self._expiry_delta = expiry_delta
        self._state = SourceState.VALID
        self._error: Optional[BaseException] = None
        self._generation = 0
        self._cond = threading.Condition()

    @property
    def state(self) -> SourceState:
        with self._cond:
            return self._state

    @property
    def expiry_delta(self) -> timedelta:
        return self._expiry_delta

    def peek(self) -> Token:
        """Return the held token without checking or refreshing it."""
        with self._cond:
            return self._token

    def token(self) -> Token:
        """Return a token valid for at least the lead time, refreshing if needed.

        Raises:
            BmwidError: Whatever the refresher raised.  Concurrent callers
                that waited on the same refresh get the same exception.
        """
        with self._cond:
            if self._state is SourceState.REFRESHING:
                awaited = self._generation
                while self._state is SourceState.REFRESHING:
                    self._cond.wait()
                # the refresh we waited on failed: share its error
                if (
                    self._state is SourceState.FAILED
                    and self._generation > awaited
                    and self._error is not None
                ):
                    raise self._error
            if self._token.valid(self._expiry_delta):
                return self._token

            self._state = SourceState.REFRESHING
            generation = self._generation
            current = self._token

        try:
            fresh = self._refresher(current)
        except PersistenceError as exc:
            # refreshed but not stored: keep serving the new token, report once
            with self._cond:
                if exc.token is not None:
                    self._token = exc.token
                    self._state = SourceState.VALID
                    self._error = None
                else:
                    self._state = SourceState.FAILED
                    self._error = exc
                self._generation = generation + 1
                self._cond.notify_all()
            raise
        except BaseException as exc:
            with self._cond:
                self._state = SourceState.FAILED
                self._error = exc
                self._generation = generation + 1
                self._cond.notify_all()
            logger.debug("Token refresh failed: %s", exc)
            raise

        with self._cond:
            self._token = fresh
            self._state = SourceState.VALID
            self._error = None
            self._generation = generation + 1
            self._cond.notify_all()
        logger.debug("Token refreshed, new expiry %s", fresh.expiry)
        return fresh

    def access_token(self) -> str:
        """Shortcut for ``token().access_token``."""
        return self.token().access_token


class BearerAuth(httpx.Auth):
    """httpx auth flow that sends ``Authorization: Bearer <token>``.

    Example::

        client = httpx.Client(auth=BearerAuth(source))
    """

    def __init__(self, source: RefreshingTokenSource) -> None:
        self._source = source

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._source.token()
        scheme = token.token_type or "Bearer"
        if scheme.lower() == "bearer":
            scheme = "Bearer"
        request.headers["Authorization"] = f"{scheme} {token.access_token}"
        yield request
