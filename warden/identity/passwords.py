"""
===============================================================================
CRC CARD — identity/passwords.py
===============================================================================

Module:
    Password hashing (Argon2id)

Responsibilities:
    - Hash passwords with a memory-hard, salted algorithm (per-call salt).
    - Verify a password against a stored hash, failing closed.
    - Tell callers when a stored hash should be upgraded.

Collaborators:
    - argon2.PasswordHasher (argon2-cffi)
    - infrastructure/drivers/*: hash on create/update
    - application/auth.py: verify on login

Notes:
    - A missing, empty or malformed hash never verifies and never raises.
    - Hashing failures surface as HashError.
===============================================================================
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from ..crosscutting.exceptions import HashError

# argon2-cffi defaults to Argon2id with a random 16-byte salt per hash.
_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    try:
        return _password_hasher.hash(password)
    except HashingError as exc:
        raise HashError("Password hashing failed", original_error=exc) from exc


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check a password against a stored hash; False for users without one."""
    if not password_hash:
        return False
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def password_needs_rehash(password_hash: str) -> bool:
    """True when the stored hash uses weaker parameters than the current hasher."""
    try:
        return _password_hasher.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True
