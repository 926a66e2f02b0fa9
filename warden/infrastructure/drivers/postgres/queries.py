"""
Name: SQL fragments and builders for the PostgreSQL driver

Responsibilities:
  - Keep the column contract with the migrations in one place
  - Build the dynamic parts of user queries: search composition (LIKE ANY,
    OR-ed) and partial-update SET clauses
  - Map rows to domain entities

Notes:
  - Builders are pure functions (no I/O) so they are unit-testable
  - Only code-owned identifiers are interpolated; values always go as params
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from psycopg.types.json import Jsonb

from ....domain.codecs import MetadataCodec, decode_optional, encode_optional
from ....domain.entities import (
    OneTimeTokenType,
    Session,
    User,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)
from ....identity.passwords import hash_password
from .base import SCHEMA

USER_TABLE = f'{SCHEMA}."user"'
SESSION_TABLE = f'{SCHEMA}."session"'
TOKEN_TABLE = f'{SCHEMA}."one_time_token"'
CACHE_TABLE = f'{SCHEMA}."cache"'
TOKEN_TYPE = f'{SCHEMA}."one_time_token_type"'

USER_COLUMNS = (
    "id, created_at, updated_at, deleted_at, role, email, password_hash, "
    "email_confirmed_at, phone_number, phone_number_confirmed_at, last_sign_in, "
    "app_metadata, user_metadata, banned_until"
)

SESSION_COLUMNS = "id, created_at, expires_at, user_id, ip, user_agent"

# Column expression used by LIKE for each searchable field.
_SEARCH_EXPRESSIONS: dict[str, str] = {
    "id": "id::text",
    "email": "email",
    "phone_number": "phone_number",
}

# Equality predicate for each lookup field.
_LOOKUP_PREDICATES: dict[UserLookupField, str] = {
    UserLookupField.ID: "id = %s::uuid",
    UserLookupField.EMAIL: "email = %s",
    UserLookupField.PHONE_NUMBER: "phone_number = %s",
}

# UserUpdate field -> column. password is special-cased (hashed).
_UPDATE_COLUMNS: dict[str, str] = {
    "role": "role",
    "password_hash": "password_hash",
    "email": "email",
    "email_confirmed_at": "email_confirmed_at",
    "phone_number": "phone_number",
    "phone_number_confirmed_at": "phone_number_confirmed_at",
    "last_sign_in": "last_sign_in",
    "app_metadata": "app_metadata",
    "user_metadata": "user_metadata",
    "banned_until": "banned_until",
}


def ttl_interval(ttl_seconds: int | None) -> timedelta | None:
    """None stays None so `now() + NULL::interval` yields NULL (no expiry)."""
    if ttl_seconds is None:
        return None
    return timedelta(seconds=ttl_seconds)


def token_type_value(token_type: OneTimeTokenType) -> str:
    return OneTimeTokenType(token_type).value


def lookup_predicate(field: UserLookupField) -> str:
    return _LOOKUP_PREDICATES[UserLookupField(field)]


def build_user_search(filters: UserSearchFields) -> tuple[str, list[object]]:
    """
    R: `(<col> LIKE ANY(%s) OR ...)` for the present fields.

    Returns ("", []) when no field is present (no extra restriction).
    """
    clauses: list[str] = []
    params: list[object] = []

    for name, patterns in filters.present():
        clauses.append(f"{_SEARCH_EXPRESSIONS[name]} LIKE ANY(%s::text[])")
        params.append(patterns)

    if not clauses:
        return "", []
    return "(" + " OR ".join(clauses) + ")", params


def build_user_update(
    patch: UserUpdate, metadata_codec: MetadataCodec
) -> tuple[list[str], list[object]]:
    """
    R: SET assignments for the Set fields of a partial update.

    updated_at = now() is always appended, so an all-IGNORE patch still
    produces a valid statement that bumps updated_at.
    """
    assignments: list[str] = []
    params: list[object] = []

    for name, value in patch.assignments():
        if name == "password":
            assignments.append("password_hash = %s")
            params.append(None if value is None else hash_password(value))
        elif name == "user_metadata":
            assignments.append("user_metadata = %s")
            params.append(user_metadata_param(metadata_codec, value))
        elif name == "app_metadata":
            assignments.append("app_metadata = %s")
            params.append(Jsonb(value or {}))
        else:
            assignments.append(f"{_UPDATE_COLUMNS[name]} = %s")
            params.append(value)

    assignments.append("updated_at = now()")
    return assignments, params


def _jsonb(value: Any) -> Jsonb | None:
    return None if value is None else Jsonb(value)


def user_metadata_param(metadata_codec: MetadataCodec, value: Any) -> Jsonb | None:
    return _jsonb(encode_optional(metadata_codec, value))


# =============================================================================
# Row mapping
# =============================================================================


def row_to_user(row: tuple, metadata_codec: MetadataCodec) -> User:
    (
        user_id,
        created_at,
        updated_at,
        deleted_at,
        role,
        email,
        password_hash,
        email_confirmed_at,
        phone_number,
        phone_number_confirmed_at,
        last_sign_in,
        app_metadata,
        user_metadata,
        banned_until,
    ) = row

    return User(
        id=user_id,
        created_at=created_at,
        updated_at=updated_at,
        deleted_at=deleted_at,
        role=role,
        email=email,
        password_hash=password_hash,
        email_confirmed_at=email_confirmed_at,
        phone_number=phone_number,
        phone_number_confirmed_at=phone_number_confirmed_at,
        last_sign_in=last_sign_in,
        app_metadata=dict(app_metadata or {}),
        user_metadata=decode_optional(metadata_codec, user_metadata),
        banned_until=banned_until,
    )


def row_to_session(row: tuple) -> Session:
    session_id, created_at, expires_at, user_id, ip, user_agent = row[:6]
    return Session(
        id=session_id,
        created_at=created_at,
        expires_at=expires_at,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
    )
