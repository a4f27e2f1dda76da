"""Authentication for ConnectedDrive.

The main entry points are:

- :class:`Identity` -- runs the provider's login exchange and token refresh
  for one region and user.
- :class:`RefreshingTokenSource` -- the thread-safe, self-refreshing handle
  returned by :meth:`Identity.login`.
- :class:`SettingsStore` -- token persistence interface, with
  :class:`FileSettingsStore` and :class:`MemorySettingsStore`.

Typical usage::

    from bmwid.auth import Identity

    with Identity("row") as identity:
        source = identity.login(user, password, captcha_token)
        print(source.access_token())
"""

from bmwid.auth.identity import REDIRECT_URI, SCOPE, Identity
from bmwid.auth.settings_store import (
    FileSettingsStore,
    MemorySettingsStore,
    SettingsStore,
)
from bmwid.auth.token_source import BearerAuth, RefreshingTokenSource, SourceState

__all__ = [
    "BearerAuth",
    "FileSettingsStore",
    "Identity",
    "MemorySettingsStore",
    "REDIRECT_URI",
    "RefreshingTokenSource",
    "SCOPE",
    "SettingsStore",
    "SourceState",
]
