"""ConnectedDrive login: OAuth2 Authorization Code + PKCE, provider style.

The GCDM identity service does not run a browser-style authorization code
flow.  :meth:`Identity.login` drives it directly:

1. **Stored token** -- if the token store has a record for
   ``bmw.<username>``, try to refresh it and return early on success.
2. **Credential submission** -- POST ``/oauth/authenticate`` with the
   authorize parameters, username, password and ``grant_type``; the CAPTCHA
   token travels in the ``hcaptchatoken`` header.  The answer is JSON whose
   ``redirect_to`` field holds a redirect URI with an ``authorization``
   parameter.
3. **Authorization continuation** -- POST the same form again with
   ``authorization`` instead of the credentials.  The answer is a real
   ``302`` whose ``Location`` is ``com.bmw.connected://oauth?code=...``;
   redirects are disabled so the header can be read.
4. **Token exchange** -- POST ``/oauth/token`` with the code and PKCE
   verifier, authenticated by the region's static Basic header.  The token
   is persisted and wrapped in a :class:`RefreshingTokenSource`.

Any failure aborts the login; nothing is retried.  A later attempt starts
over with a new PKCE pair and a new cookie jar.

See Also:
    :mod:`bmwid.regions` for the per-region constants.
    :mod:`bmwid.auth.token_source` for the handle returned to callers.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Optional, Union
from urllib.parse import parse_qs, unquote, urlsplit

from bmwid.auth.settings_store import FileSettingsStore, SettingsStore
from bmwid.auth.token_source import DEFAULT_EXPIRY_DELTA, RefreshingTokenSource
from bmwid.client.transport import Transport
from bmwid.exceptions import (
    BmwidError,
    CredentialError,
    InvalidUsageError,
    PersistenceError,
    ProtocolError,
)
from bmwid.models import Credentials, PKCEPair, RegionProfile, Token
from bmwid.pkce import generate_pkce_pair
from bmwid.regions import resolve_region

logger = logging.getLogger(__name__)

PROVIDER = "bmw"
REDIRECT_URI = "com.bmw.connected://oauth"
SCOPE = (
    "openid profile email offline_access smacc vehicle_data perseus dlm svds "
    "cesim vsapi remote_services fupo authenticate_user"
)
NONCE = "login_nonce"
CAPTCHA_HEADER = "hcaptchatoken"


def _query_param(source: str, name: str) -> str:
    """Extract *name* from a redirect URI or a ``redirect_uri=...`` string.

    Returns an empty string when the parameter is absent.
    """
    if source.startswith("redirect_uri="):
        source = source[len("redirect_uri="):]
    if "?" not in source and "%3f" in source.lower():
        source = unquote(source)
    query = urlsplit(source).query if "?" in source else source
    values = parse_qs(query)
    return values.get(name, [""])[0]


def _raise_for_provider_error(payload: dict[str, Any]) -> None:
    """Raise :class:`CredentialError` if the provider reported an error."""
    error = payload.get("error")
    description = payload.get("error_description")
    if error or description:
        raise CredentialError(
            str(description or error),
            error=str(error) if error else None,
        )


class Identity:
    """Authentication session for one region and one user.

    Not safe for concurrent :meth:`login` calls: the login toggles redirect
    following and swaps the cookie jar on the shared transport.  Use one
    ``Identity`` per concurrent session.  The token sources it returns are
    thread-safe.

    Args:
        region: Region code (resolved through *resolver*) or a ready
            :class:`~bmwid.models.RegionProfile`.
        store: Token store. Defaults to :class:`FileSettingsStore`.
        transport: HTTP transport. Defaults to a new :class:`Transport`,
            which the identity then owns and closes.
        resolver: Region lookup, injectable for custom deployments.
        username: Preset user, so :meth:`resume` and :meth:`refresh_token`
            can run without a prior :meth:`login`.
        provider: Prefix of the token store key.
        expiry_delta: Lead time before expiry at which handles refresh.

    Example::

        identity = Identity("na")
        source = identity.login("alice", "secret", "captcha-token")
        source.access_token()
    """

    def __init__(
        self,
        region: Union[str, RegionProfile],
        store: Optional[SettingsStore] = None,
        transport: Optional[Transport] = None,
        resolver: Callable[[str], RegionProfile] = resolve_region,
        username: Optional[str] = None,
        provider: str = PROVIDER,
        expiry_delta: timedelta = DEFAULT_EXPIRY_DELTA,
    ) -> None:
        self.region = region if isinstance(region, RegionProfile) else resolver(region)
        self.store = store if store is not None else FileSettingsStore()
        self._owns_transport = transport is None
        self.transport = transport if transport is not None else Transport()
        self._provider = provider
        self._user = username or ""
        self._expiry_delta = expiry_delta

    def __enter__(self) -> Identity:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport if this identity created it."""
        if self._owns_transport:
            self.transport.close()

    @property
    def username(self) -> str:
        return self._user

    def settings_key(self) -> str:
        """Return the token store key, ``"<provider>.<username>"``.

        Raises:
            InvalidUsageError: If no username is known yet.
        """
        if not self._user:
            raise InvalidUsageError("No username set for this identity")
        return f"{self._provider}.{self._user}"

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    def login(self, username: str, password: str, captcha_token: str) -> RefreshingTokenSource:
        """Authenticate *username* and return a self-refreshing token source.

        A stored token is refreshed and reused when possible; only when that
        fails does the interactive exchange run, which needs a valid CAPTCHA
        token.

        Raises:
            InvalidUsageError: If *username* is empty.
            CredentialError: If the provider rejects the login.
            ProtocolError: If a response breaks the expected contract.
            TransportError: On network failures.
            PersistenceError: If the new token could not be stored; the
                token is attached to the exception.
        """
        if not username:
            raise InvalidUsageError("username must not be empty")
        credentials = Credentials(
            username=username, password=password, captcha_token=captcha_token
        )

        with self.transport.no_redirects():
            self._user = username

            stored = self.store.get(self.settings_key())
            if stored is not None:
                logger.debug("identity.login - database token found")
                try:
                    token = self.refresh_token(stored)
                except BmwidError as exc:
                    logger.debug(
                        "identity.login - database token invalid (%s). "
                        "Proceeding to login via user, password and captcha.",
                        exc,
                    )
                else:
                    return self.token_source(token)
            else:
                logger.debug(
                    "identity.login - no database token found. "
                    "Proceeding to login via user, password and captcha."
                )

            token = self._login_interactive(credentials)

        return self.token_source(token)

    def refresh_token(self, token: Token) -> Token:
        """Exchange *token*'s refresh token for a new token and persist it.

        The store is left untouched when the refresh fails.

        Raises:
            CredentialError: If there is no refresh token or the provider
                rejects it.
            ProtocolError: On a malformed token response.
            TransportError: On network failures.
            PersistenceError: If the refreshed token could not be stored.
        """
        if not token.refresh_token:
            raise CredentialError("No refresh token available")

        fresh = self._request_token(
            {
                "redirect_uri": REDIRECT_URI,
                "refresh_token": token.refresh_token,
                "grant_type": "refresh_token",
            }
        )
        if not fresh.refresh_token:
            fresh.refresh_token = token.refresh_token
        self._persist(fresh)
        return fresh

    def token_source(self, token: Token) -> RefreshingTokenSource:
        """Wrap *token* in a handle that refreshes through this identity."""
        return RefreshingTokenSource(token, self.refresh_token, self._expiry_delta)

    def resume(self) -> Optional[RefreshingTokenSource]:
        """Return a handle over the stored token, or ``None`` if there is none.

        No network request is made here; the handle refreshes on first use
        if the stored token is inside the lead time.
        """
        stored = self.store.get(self.settings_key())
        if stored is None:
            return None
        return self.token_source(stored)

    def logout(self) -> bool:
        """Delete the stored token record. Returns ``True`` if one existed."""
        return self.store.delete(self.settings_key())

    # ------------------------------------------------------------------ #
    # Interactive exchange
    # ------------------------------------------------------------------ #

    def _login_interactive(self, credentials: Credentials) -> Token:
        pkce = generate_pkce_pair()
        self.transport.reset_cookies()

        form = self._authorize_form(pkce)
        authorization = self._submit_credentials(form, credentials)
        code = self._continue_authorization(form, authorization)

        token = self._request_token(
            {
                "code": code,
                "redirect_uri": REDIRECT_URI,
                "grant_type": "authorization_code",
                "code_verifier": pkce.verifier,
            }
        )
        self._persist(token)
        return token

    def _authorize_form(self, pkce: PKCEPair) -> dict[str, str]:
        return {
            "client_id": self.region.client_id,
            "response_type": "code",
            "redirect_uri": REDIRECT_URI,
            "state": self.region.state,
            "scope": SCOPE,
            "nonce": NONCE,
            "code_challenge_method": "S256",
            "code_challenge": pkce.challenge,
        }

    def _submit_credentials(self, form: dict[str, str], credentials: Credentials) -> str:
        """Step A: post credentials, return the ``authorization`` value."""
        data = dict(form)
        data.update(
            {
                "username": credentials.username,
                "password": credentials.password,
                "grant_type": "authorization_code",
            }
        )
        response, payload = self.transport.post_json(
            self.region.authenticate_url,
            data=data,
            headers={CAPTCHA_HEADER: credentials.captcha_token},
        )
        _raise_for_provider_error(payload)
        if response.is_error:
            raise ProtocolError(
                f"Credential submission failed with HTTP {response.status_code}"
            )

        authorization = _query_param(str(payload.get("redirect_to") or ""), "authorization")
        if not authorization:
            raise ProtocolError("authorization code not found in redirect_to")
        return authorization

    def _continue_authorization(self, form: dict[str, str], authorization: str) -> str:
        """Step B: trade ``authorization`` for the code in the ``Location`` header."""
        data = dict(form)
        data["authorization"] = authorization

        response = self.transport.post(self.region.authenticate_url, data=data)
        location = response.headers.get("Location")
        if not location:
            raise ProtocolError(
                f"authorization code not found: no Location header "
                f"(HTTP {response.status_code})"
            )

        code = _query_param(location, "code")
        if not code:
            raise ProtocolError("authorization code not found in Location header")
        return code

    # ------------------------------------------------------------------ #
    # Token endpoint
    # ------------------------------------------------------------------ #

    def _request_token(self, data: dict[str, str]) -> Token:
        response, payload = self.transport.post_json(
            self.region.token_url,
            data=data,
            headers={"Authorization": self.region.token_authorization},
        )
        _raise_for_provider_error(payload)
        if response.is_error:
            raise ProtocolError(f"Token request failed with HTTP {response.status_code}")
        if not payload.get("access_token"):
            raise ProtocolError("Token response missing 'access_token' field")

        try:
            return Token.from_response(payload)
        except (TypeError, ValueError) as exc:
            raise ProtocolError(f"Malformed token response: {exc}") from exc

    def _persist(self, token: Token) -> None:
        key = self.settings_key()
        try:
            self.store.set(key, token)
        except PersistenceError as exc:
            exc.token = token
            raise
        except OSError as exc:
            raise PersistenceError(f"Cannot store token {key}: {exc}", token=token) from exc
        logger.debug("identity - token stored as %s, expires %s", key, token.expiry)
