"""HTTP transport for the identity exchange.

:class:`Transport` wraps a single :class:`httpx.Client` and adds the two
capabilities the login flow relies on:

- **Redirect toggle** -- :meth:`Transport.no_redirects` turns automatic
  redirect following off for the duration of a ``with`` block and restores
  the previous value on every exit path, so the raw ``302`` and its
  ``Location`` header reach the caller.
- **Cookie session** -- :meth:`Transport.reset_cookies` installs a fresh
  cookie jar whose policy refuses cookies scoped to a public suffix
  (``.com``, ``.co.uk``, ...), using the Mozilla Public Suffix List.

Network failures surface as :class:`~bmwid.exceptions.TransportError`.
Nothing is retried.
"""

from __future__ import annotations

import functools
import json
import logging
from contextlib import contextmanager
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy
from typing import Any, Iterator, Optional
from urllib.request import Request

import httpx
from publicsuffixlist import PublicSuffixList

from bmwid.exceptions import ProtocolError, TransportError

logger = logging.getLogger(__name__)

FORM_CONTENT = "application/x-www-form-urlencoded"


@functools.lru_cache(maxsize=1)
def _public_suffix_list() -> PublicSuffixList:
    return PublicSuffixList()


class PublicSuffixCookiePolicy(DefaultCookiePolicy):
    """Cookie policy that rejects cookies whose domain is a public suffix.

    Everything else is delegated to :class:`http.cookiejar.DefaultCookiePolicy`.
    """

    def __init__(self, psl: Optional[PublicSuffixList] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._psl = psl or _public_suffix_list()

    def set_ok_domain(self, cookie: Cookie, request: Request) -> bool:
        if cookie.domain_specified:
            domain = cookie.domain.lstrip(".").lower()
            if domain and self._psl.is_public(domain):
                logger.debug("Rejecting cookie %r scoped to public suffix %s", cookie.name, domain)
                return False
        return super().set_ok_domain(cookie, request)


def new_cookie_jar() -> CookieJar:
    """Return an empty jar governed by :class:`PublicSuffixCookiePolicy`."""
    return CookieJar(policy=PublicSuffixCookiePolicy())


class Transport:
    """Blocking HTTP transport used by :class:`~bmwid.auth.identity.Identity`.

    Args:
        timeout: Per-request timeout in seconds.  This is the only way to
            bound a login; the exchange itself is not cancellable.
        verify_ssl: Verify TLS certificates.
        follow_redirects: Initial redirect-following behaviour.
        transport: Optional custom :class:`httpx.BaseTransport` (tests use
            :class:`httpx.MockTransport`).

    Example::

        with Transport(timeout=10) as transport:
            with transport.no_redirects():
                response = transport.post(url, data={"a": "b"})
                location = response.headers.get("Location")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        follow_redirects: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            verify=verify_ssl,
            follow_redirects=follow_redirects,
            transport=transport,
            cookies=new_cookie_jar(),
            headers={"Accept": "application/json"},
        )

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    # Session state
    # ------------------------------------------------------------------ #

    @property
    def follow_redirects(self) -> bool:
        return self._client.follow_redirects

    @follow_redirects.setter
    def follow_redirects(self, value: bool) -> None:
        self._client.follow_redirects = value

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    @contextmanager
    def no_redirects(self) -> Iterator[Transport]:
        """Disable redirect following inside the block, then restore it."""
        previous = self._client.follow_redirects
        self._client.follow_redirects = False
        try:
            yield self
        finally:
            self._client.follow_redirects = previous

    def reset_cookies(self) -> CookieJar:
        """Replace the cookie jar with an empty public-suffix-aware one."""
        jar = new_cookie_jar()
        self._client.cookies = jar
        return jar

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def post(
        self,
        url: str,
        data: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """POST a form-encoded body and return the raw response.

        Non-2xx statuses are returned, not raised; callers decide what an
        error body means.

        Raises:
            TransportError: On timeout, DNS, TLS or connection failures.
        """
        merged_headers = {"Content-Type": FORM_CONTENT}
        merged_headers.update(headers or {})
        try:
            response = self._client.post(url, data=data, headers=merged_headers)
        except httpx.RequestError as exc:
            raise TransportError(f"POST {url} failed: {exc}") from exc
        logger.debug("POST %s -> %d", url, response.status_code)
        return response

    def post_json(
        self,
        url: str,
        data: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> tuple[httpx.Response, dict[str, Any]]:
        """POST a form and decode the JSON object in the response body.

        Returns:
            The raw response and the decoded object.  An empty body decodes
            to ``{}``.

        Raises:
            TransportError: On network failures.
            ProtocolError: If the body is not a JSON object.
        """
        response = self.post(url, data=data, headers=headers)
        return response, decode_json(response)


def decode_json(response: httpx.Response) -> dict[str, Any]:
    """Decode *response* as a JSON object.

    Raises:
        ProtocolError: If the body is not JSON or not an object.
    """
    if not response.content:
        return {}
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(
            f"Expected JSON from {response.request.url} "
            f"(HTTP {response.status_code}): {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise ProtocolError(
            f"Expected a JSON object from {response.request.url}, "
            f"got {type(payload).__name__}"
        )
    return payload
