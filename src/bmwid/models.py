"""Pydantic models shared across bmwid.

**Login data** -- :class:`RegionProfile` (static per-deployment endpoints),
:class:`Credentials` (what the user types, never persisted) and
:class:`PKCEPair` (fresh per login attempt).

**Token data** -- :class:`Token` is both the in-memory credential and the
JSON record written to the token store.

**Configuration** -- :class:`Settings`, serialised as ``config.json`` in the
user's config directory.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Region ---


class RegionProfile(BaseModel):
    """Endpoint and client parameters for one ConnectedDrive deployment.

    Example::

        RegionProfile(
            code="NA",
            client_id="54394a4b-...",
            auth_uri="https://login.bmwusa.com/gcdm",
            state="rgastJbZsMtup49-Lp0FMQ",
            token_authorization="Basic NTQzOTRh...",
        )
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(description="Upper-case region code, e.g. NA or ROW")
    client_id: str
    auth_uri: str = Field(description="Base URI of the GCDM identity service")
    state: str = Field(description="Static OAuth state value expected by the provider")
    token_authorization: str = Field(
        description="Authorization header value sent to the token endpoint"
    )

    @property
    def authenticate_url(self) -> str:
        return f"{self.auth_uri}/oauth/authenticate"

    @property
    def token_url(self) -> str:
        return f"{self.auth_uri}/oauth/token"


# --- Login inputs ---


class Credentials(BaseModel):
    """Interactive login input. Lives only for one :meth:`Identity.login` call."""

    username: str
    password: str = Field(repr=False)
    captcha_token: str = Field(default="", repr=False)


class PKCEPair(BaseModel):
    """A PKCE ``code_verifier`` and its S256 ``code_challenge``."""

    model_config = ConfigDict(frozen=True)

    verifier: str = Field(repr=False)
    challenge: str


# --- Token ---


class Token(BaseModel):
    """An OAuth2 token as returned by the token endpoint.

    ``expiry`` is absolute (UTC).  The token endpoint sends a relative
    ``expires_in``; :meth:`from_response` converts it.  A token without an
    expiry is treated as never expiring.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str = Field(default="", repr=False)
    expiry: Optional[datetime] = None

    @field_validator("expiry")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_response(
        cls, payload: dict[str, Any], now: Optional[datetime] = None
    ) -> Token:
        """Build a token from a decoded token-endpoint response.

        Args:
            payload: The JSON object returned by ``/oauth/token``.
            now: Reference time for ``expires_in``; defaults to the current
                UTC time.

        Returns:
            A :class:`Token` with an absolute :attr:`expiry` when a positive
            ``expires_in`` was present.  Zero or missing means no expiry.

        Raises:
            pydantic.ValidationError: If ``access_token`` is missing.
        """
        token = cls.model_validate(payload)
        expires_in = payload.get("expires_in")
        if expires_in not in (None, "") and token.expiry is None:
            seconds = float(expires_in)
            if seconds > 0:
                now = now or datetime.now(timezone.utc)
                token.expiry = now + timedelta(seconds=seconds)
        return token

    def valid(
        self, leeway: timedelta = timedelta(0), now: Optional[datetime] = None
    ) -> bool:
        """Return True if the access token is usable for at least *leeway*."""
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now < self.expiry - leeway


# --- Settings ---


class Settings(BaseModel):
    """User configuration stored in ``<config_dir>/config.json``.

    Example::

        Settings(region="NA", timeout=10)
    """

    region: str = Field(default="ROW", description="Default region code")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    verify_ssl: bool = True
    refresh_lead_minutes: int = Field(
        default=15,
        ge=0,
        description="Refresh access tokens this many minutes before expiry",
    )
    store_path: Optional[str] = Field(
        default=None, description="Override for the token store file"
    )
