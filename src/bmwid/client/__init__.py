"""HTTP transport for the identity exchange.

Exports:
    :class:`Transport` -- httpx client with a scoped redirect toggle and a
    public-suffix-aware cookie jar.
    :func:`decode_json` -- JSON object decoding with protocol errors.
"""

from bmwid.client.transport import (
    PublicSuffixCookiePolicy,
    Transport,
    decode_json,
    new_cookie_jar,
)

__all__ = ["PublicSuffixCookiePolicy", "Transport", "decode_json", "new_cookie_jar"]
