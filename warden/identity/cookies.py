"""
===============================================================================
CRC CARD — identity/cookies.py
===============================================================================

Module:
    Session cookie signer

Responsibilities:
    - Sign a session id: "<session_id>|<hex HMAC-SHA256(secret, session_id)>".
    - Verify a signed cookie and return the session id, or None.

Collaborators:
    - hmac / hashlib (stdlib)
    - crosscutting.config: cookie_secret for CookieSigner.from_settings()
    - application/auth.py: sign_cookie / verify_cookie / get_session_from_cookie

Notes:
    - Malformed cookies (not exactly one "|") are rejected before hashing.
    - Digest comparison uses hmac.compare_digest.
    - Session ids are canonical UUID text, which never contains "|".
===============================================================================
"""

from __future__ import annotations

import hashlib
import hmac

SEPARATOR = "|"


def _digest(session_id: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), session_id.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def sign(session_id: str, secret: str) -> str:
    """Build the cookie value for a session id."""
    if SEPARATOR in session_id:
        raise ValueError("session_id must not contain '|'")
    return f"{session_id}{SEPARATOR}{_digest(session_id, secret)}"


def verify(token: str, secret: str) -> str | None:
    """Return the session id when the signature matches, None otherwise."""
    parts = token.split(SEPARATOR)
    if len(parts) != 2:
        return None

    session_id, provided = parts
    if not session_id or not provided:
        return None

    # Wire format is ASCII.
    if not (session_id.isascii() and provided.isascii()):
        return None

    expected = _digest(session_id, secret)
    if not hmac.compare_digest(expected, provided):
        return None
    return session_id


class CookieSigner:
    """sign/verify bound to one secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("cookie secret must not be empty")
        self._secret = secret

    @classmethod
    def from_settings(cls) -> "CookieSigner":
        from ..crosscutting.config import get_settings

        return cls(get_settings().cookie_secret)

    def sign(self, session_id: str) -> str:
        return sign(session_id, self._secret)

    def verify(self, token: str) -> str | None:
        return verify(token, self._secret)
