"""
CRC — domain/entities.py

Name
- Domain entities and write-side value objects

Responsibilities
- Describe the records every driver stores: User, Session, OneTimeToken,
  CacheEntry, ModuleVersion.
- Describe the write side: UserInsert, UserUpdate (partial update), search
  filters and lookup fields.
- Hold the closed enumerations (token types, schema modules, lookup fields).

Collaborators
- domain.drivers: contracts expressed in terms of these types
- infrastructure.drivers.*: map rows <-> entities

Constraints
- Pure data: no SQL, no I/O.
- Frozen dataclasses; drivers return new instances instead of mutating.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from ipaddress import IPv4Address, IPv6Address
from typing import Any, Generic, Iterator, TypeVar
from uuid import UUID

IPAddress = IPv4Address | IPv6Address

M = TypeVar("M")


class OneTimeTokenType(str, Enum):
    """Closed set of one-time token purposes (mirrors the SQL enum)."""

    PASSWORD_RESET = "password-reset"


class Module(str, Enum):
    """Independently versioned schema units, in dependency order."""

    BASE = "base"
    AUTH = "auth"
    CACHE = "cache"


class UserLookupField(str, Enum):
    """Columns a single user can be addressed by in update/delete."""

    ID = "id"
    EMAIL = "email"
    PHONE_NUMBER = "phone_number"


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True, slots=True)
class User(Generic[M]):
    """Identity record. user_metadata is decoded by the caller's MetadataCodec."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    email: str
    deleted_at: datetime | None = None
    role: str | None = None
    password_hash: str | None = None
    email_confirmed_at: datetime | None = None
    phone_number: str | None = None
    phone_number_confirmed_at: datetime | None = None
    last_sign_in: datetime | None = None
    app_metadata: dict[str, Any] = field(default_factory=dict)
    user_metadata: M | None = None
    banned_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class Session:
    """Bearer session. expires_at None means it never expires."""

    id: UUID
    created_at: datetime
    user_id: UUID
    expires_at: datetime | None = None
    ip: IPAddress | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class OneTimeToken:
    """Stored side of a one-time token; the raw token is never kept."""

    id: UUID
    created_at: datetime
    expires_at: datetime
    token_type: OneTimeTokenType
    user_id: UUID
    token_hash: str
    deleted_at: datetime | None = None
    used_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CacheEntry:
    resource_type: str
    key: str
    value: str
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ModuleVersion:
    module: Module
    version: date


# =============================================================================
# Write side
# =============================================================================


class _Ignore:
    """Sentinel type: the field is left untouched by a partial update."""

    _instance: "_Ignore | None" = None

    def __new__(cls) -> "_Ignore":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "IGNORE"

    def __bool__(self) -> bool:
        return False


IGNORE = _Ignore()


@dataclass(frozen=True, slots=True)
class UserInsert(Generic[M]):
    """New identity. password is raw; the driver hashes it."""

    email: str
    password: str | None = None
    role: str | None = None
    email_confirmed_at: datetime | None = None
    phone_number: str | None = None
    phone_number_confirmed_at: datetime | None = None
    user_metadata: M | None = None


@dataclass(frozen=True, slots=True)
class UserUpdate(Generic[M]):
    """
    Partial update. Every field defaults to IGNORE; any other value (None
    included) is written. password is raw and hashed by the driver;
    password_hash is stored as given. Setting both is a ValueError.

    Example:
        UserUpdate(email_confirmed_at=now, phone_number=None)
    """

    role: str | None | _Ignore = IGNORE
    email: str | _Ignore = IGNORE
    password: str | None | _Ignore = IGNORE
    password_hash: str | None | _Ignore = IGNORE
    email_confirmed_at: datetime | None | _Ignore = IGNORE
    phone_number: str | None | _Ignore = IGNORE
    phone_number_confirmed_at: datetime | None | _Ignore = IGNORE
    last_sign_in: datetime | None | _Ignore = IGNORE
    app_metadata: dict[str, Any] | _Ignore = IGNORE
    user_metadata: M | None | _Ignore = IGNORE
    banned_until: datetime | None | _Ignore = IGNORE

    def __post_init__(self) -> None:
        if self.password is not IGNORE and self.password_hash is not IGNORE:
            raise ValueError("set either password or password_hash, not both")

    def assignments(self) -> Iterator[tuple[str, Any]]:
        """(field, value) pairs for the Set fields, in declaration order."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not IGNORE:
                yield f.name, value

    def is_empty(self) -> bool:
        return next(self.assignments(), None) is None


@dataclass(frozen=True, slots=True)
class UserSearchFields:
    """
    Optional LIKE patterns per column. Present fields are OR-ed together;
    None means the column does not take part in the search.
    """

    id: list[str] | None = None
    email: list[str] | None = None
    phone_number: list[str] | None = None

    def present(self) -> list[tuple[str, list[str]]]:
        out: list[tuple[str, list[str]]] = []
        for name in ("id", "email", "phone_number"):
            patterns = getattr(self, name)
            if patterns is not None:
                out.append((name, list(patterns)))
        return out
