"""
============================================================
CRC CARD — infrastructure/drivers/postgres/tokens.py
============================================================
Class: PostgresOneTimeTokenStore

Responsibilities:
  - Issue typed, expiring one-time tokens; persist only SHA-256(token).
  - Validate without mutating, use at most once, revoke by soft delete.
  - Keep at most one active token per (user_id, token_type).

Collaborators:
  - postgres.base.PostgresStore
  - identity.tokens (generate_token, hash_token)

Constraints / Notes:
  - Issuing a second token for the same (user, type) REPLACES the active
    one: the previous token is soft-deleted in the same transaction as the
    insert, so the unique index never sees two active rows.
  - use_one_time_token is a single conditional UPDATE, so two concurrent
    uses of the same token cannot both succeed.
  - Expired tokens found by validate are soft-deleted on the cleanup queue.
============================================================
"""

from __future__ import annotations

from uuid import UUID

from ....crosscutting.exceptions import (
    CreatedTooFewRecordsError,
    CreatedTooManyRecordsError,
    DeletedTooFewRecordsError,
    DeletedTooManyRecordsError,
    TooFewRecordsError,
    UpdatedTooFewRecordsError,
    UpdatedTooManyRecordsError,
    check_single,
)
from ....domain.entities import OneTimeTokenType
from ....identity.tokens import generate_token, hash_token
from .base import PostgresStore
from .queries import TOKEN_TABLE, TOKEN_TYPE, USER_TABLE, token_type_value, ttl_interval


class PostgresOneTimeTokenStore(PostgresStore):
    """R: `warden."one_time_token"` table access."""

    _SQL_REVOKE_ACTIVE = f"""
        UPDATE {TOKEN_TABLE}
        SET deleted_at = now()
        WHERE user_id = %s
          AND token_type = %s::{TOKEN_TYPE}
          AND deleted_at IS NULL
        RETURNING id
    """

    _SQL_INSERT = f"""
        INSERT INTO {TOKEN_TABLE} (user_id, token_type, token_hash, expires_at)
        SELECT u.id, %s::{TOKEN_TYPE}, %s, now() + %s::interval
        FROM {USER_TABLE} u
        WHERE u.id = %s AND u.deleted_at IS NULL
        RETURNING id
    """

    _SQL_FIND_ACTIVE = f"""
        SELECT id, (expires_at <= now()) AS expired
        FROM {TOKEN_TABLE}
        WHERE user_id = %s
          AND token_type = %s::{TOKEN_TYPE}
          AND token_hash = %s
          AND deleted_at IS NULL
          AND used_at IS NULL
    """

    _SQL_USE = f"""
        UPDATE {TOKEN_TABLE}
        SET used_at = now()
        WHERE user_id = %s
          AND token_type = %s::{TOKEN_TYPE}
          AND token_hash = %s
          AND deleted_at IS NULL
          AND used_at IS NULL
          AND expires_at > now()
        RETURNING id
    """

    _SQL_SOFT_DELETE_EXPIRED = f"""
        UPDATE {TOKEN_TABLE}
        SET deleted_at = now()
        WHERE id = %s AND deleted_at IS NULL AND expires_at <= now()
    """

    # Reaper: revokes used or expired tokens.
    _SQL_PURGE_DEAD = f"""
        UPDATE {TOKEN_TABLE}
        SET deleted_at = now()
        WHERE deleted_at IS NULL
          AND (used_at IS NOT NULL OR expires_at <= now())
    """

    def create_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, ttl_seconds: int
    ) -> str:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")

        token = generate_token()
        type_value = token_type_value(token_type)
        extra = {"user_id": str(user_id), "token_type": type_value}

        with self._transaction(
            context_msg="PostgresOneTimeTokenStore: create_one_time_token failed",
            extra=extra,
        ) as conn:
            conn.execute(self._SQL_REVOKE_ACTIVE, (user_id, type_value))
            rows = conn.execute(
                self._SQL_INSERT,
                (type_value, hash_token(token), ttl_interval(ttl_seconds), user_id),
            ).fetchall()
            check_single(
                len(rows),
                operation="create_one_time_token",
                too_few=CreatedTooFewRecordsError,
                too_many=CreatedTooManyRecordsError,
            )
        return token

    def validate_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        type_value = token_type_value(token_type)
        row = self._fetchone(
            query=self._SQL_FIND_ACTIVE,
            params=(user_id, type_value, hash_token(token)),
            context_msg="PostgresOneTimeTokenStore: validate_one_time_token failed",
            extra={"user_id": str(user_id), "token_type": type_value},
        )
        if row is None:
            raise TooFewRecordsError(
                "validate_one_time_token: no active token",
                operation="validate_one_time_token",
                count=0,
            )

        token_id, expired = row
        if expired:
            self._schedule(
                "revoke_expired_one_time_token",
                query=self._SQL_SOFT_DELETE_EXPIRED,
                params=(token_id,),
                extra={"token_id": str(token_id)},
            )
            raise TooFewRecordsError(
                "validate_one_time_token: token expired",
                operation="validate_one_time_token",
                count=0,
            )

    def use_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        type_value = token_type_value(token_type)
        with self._transaction(
            context_msg="PostgresOneTimeTokenStore: use_one_time_token failed",
            extra={"user_id": str(user_id), "token_type": type_value},
        ) as conn:
            rows = conn.execute(
                self._SQL_USE, (user_id, type_value, hash_token(token))
            ).fetchall()
            check_single(
                len(rows),
                operation="use_one_time_token",
                too_few=UpdatedTooFewRecordsError,
                too_many=UpdatedTooManyRecordsError,
            )

    def delete_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> None:
        type_value = token_type_value(token_type)
        with self._transaction(
            context_msg="PostgresOneTimeTokenStore: delete_one_time_token failed",
            extra={"user_id": str(user_id), "token_type": type_value},
        ) as conn:
            rows = conn.execute(
                self._SQL_REVOKE_ACTIVE, (user_id, type_value)
            ).fetchall()
            check_single(
                len(rows),
                operation="delete_one_time_token",
                too_few=DeletedTooFewRecordsError,
                too_many=DeletedTooManyRecordsError,
            )

    def purge_dead(self) -> int:
        return self._execute(
            query=self._SQL_PURGE_DEAD,
            params=(),
            context_msg="PostgresOneTimeTokenStore: purge_dead failed",
            extra={},
        )
