"""PKCE helpers (:rfc:`7636`, S256 method only)."""

from __future__ import annotations

import base64
import hashlib
import secrets

from bmwid.models import PKCEPair


def s256_challenge(verifier: str) -> str:
    """Return ``BASE64URL(SHA256(verifier))`` without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PKCEPair:
    """Generate a fresh code verifier and its S256 challenge.

    Returns:
        A :class:`~bmwid.models.PKCEPair`.  Never reuse one across logins.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    verifier = secrets.token_urlsafe(64)[:128]
    return PKCEPair(verifier=verifier, challenge=s256_challenge(verifier))
