"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one error class in :mod:`bmwid.exceptions`, so shell
wrappers can tell a rejected password from a network outage without parsing
stderr.

Example::

    $ bmwid login --region na --username alice
    $ echo $?
    3   # EXIT_CREDENTIAL_ERROR -- the provider rejected the login
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required values."""

EXIT_CREDENTIAL_ERROR = 3
"""The identity provider rejected the credentials, CAPTCHA or refresh token."""

EXIT_PROTOCOL_ERROR = 4
"""A provider response did not match the expected redirect/JSON contract."""

EXIT_TRANSPORT_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, TLS, connection refused)."""

EXIT_PERSISTENCE_ERROR = 7
"""A token was obtained but could not be written to the token store."""
