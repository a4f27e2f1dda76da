"""bmwid -- BMW ConnectedDrive identity client.

Performs the provider's multi-step OAuth2 Authorization Code + PKCE login
(credential POST gated by a CAPTCHA token, synthetic JSON redirect, captured
HTTP redirect, token exchange) and hands back a self-refreshing credential
that vehicle-API clients can share.

Typical usage::

    from bmwid import Identity

    identity = Identity("na")
    source = identity.login("alice@example.com", "secret", captcha_token)
    headers = {"Authorization": f"Bearer {source.access_token()}"}

Modules:
    auth: The :class:`Identity` authenticator, the token store and the
        refreshing token source.
    client: The httpx transport used for the login exchange.
    config: XDG-aware settings resolution.
    regions: Static per-region endpoint table.
    exceptions: Error taxonomy with exit-code mapping.
"""

from bmwid.auth.identity import Identity
from bmwid.auth.token_source import BearerAuth, RefreshingTokenSource
from bmwid.models import RegionProfile, Token
from bmwid.regions import resolve_region

__version__ = "0.1.0"

__all__ = [
    "BearerAuth",
    "Identity",
    "RefreshingTokenSource",
    "RegionProfile",
    "Token",
    "resolve_region",
]
