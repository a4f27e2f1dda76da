"""Exception hierarchy for bmwid.

All exceptions inherit from :class:`BmwidError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`bmwid.exit_codes`.
The CLI entry point catches ``BmwidError`` and exits with that code; library
callers can branch on the subclass.

Subclass hierarchy::

    BmwidError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- CredentialError     (exit 3)
    +-- ProtocolError       (exit 4)
    +-- TransportError      (exit 6)
    +-- PersistenceError    (exit 7)
    +-- ConfigError         (exit 1)

None of these are retried inside the package.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from bmwid.exit_codes import (
    EXIT_CREDENTIAL_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PERSISTENCE_ERROR,
    EXIT_PROTOCOL_ERROR,
    EXIT_TRANSPORT_ERROR,
)

if TYPE_CHECKING:
    from bmwid.models import Token


class BmwidError(Exception):
    """Base exception for all bmwid errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(BmwidError):
    """Raised for invalid arguments such as an empty username."""

    exit_code = EXIT_INVALID_USAGE


class CredentialError(BmwidError):
    """Raised when the provider explicitly rejects a request.

    Covers wrong passwords, rejected CAPTCHA tokens, locked accounts and
    revoked refresh tokens.  ``description`` holds the provider's
    ``error_description`` (or ``error`` when no description was sent) so it
    can be shown to the end user verbatim.

    Args:
        description: Provider supplied, human-readable reason.
        error: Provider error code (e.g. ``"invalid_grant"``), if any.
    """

    exit_code = EXIT_CREDENTIAL_ERROR

    def __init__(self, description: str, error: Optional[str] = None):
        super().__init__(description)
        self.description = description
        self.error = error


class ProtocolError(BmwidError):
    """Raised when a response breaks the expected JSON or redirect contract.

    Examples: no ``authorization`` in the synthetic redirect, no ``Location``
    header on the continuation response, no ``code`` in the redirect URI,
    or a token response that is not JSON.
    """

    exit_code = EXIT_PROTOCOL_ERROR


class TransportError(BmwidError):
    """Raised on network-level failures (timeout, DNS, TLS, connection refused).

    The originating :mod:`httpx` exception is chained as ``__cause__``.
    """

    exit_code = EXIT_TRANSPORT_ERROR


class PersistenceError(BmwidError):
    """Raised when a freshly obtained token could not be stored.

    The token itself is still good and is attached as :attr:`token`; the
    next process start will have to log in again.

    Args:
        message: What went wrong while writing.
        token: The token that failed to persist.
    """

    exit_code = EXIT_PERSISTENCE_ERROR

    def __init__(self, message: str, token: Optional[Token] = None):
        super().__init__(message)
        self.token = token


class ConfigError(BmwidError):
    """Raised for configuration problems (unknown region, invalid settings file)."""

    exit_code = EXIT_GENERIC_FAILURE
