"""
Name: One-time token primitives

Responsibilities:
  - Generate high-entropy, URL-safe raw tokens
  - Compute the storage hash (SHA-256 hex) of a raw token

Collaborators:
  - infrastructure/drivers/*: store only hash_token(raw)

Notes:
  - Pure functions (no I/O)
  - The hash is keyless: the token already carries 256 bits of entropy
"""

from __future__ import annotations

import hashlib
import secrets

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest (64 chars) of the raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
