"""
============================================================
CRC CARD — infrastructure/drivers/postgres/sessions.py
============================================================
Class: PostgresSessionStore

Responsibilities:
  - Issue sessions for existing, non-deleted users (optional TTL).
  - Compound lookup: id + exact-or-absent ip and user_agent.
  - Lazy expiry: an expired match reads as "not found" and is deleted on
    the cleanup queue (the reader does not wait).
  - Delete one session (idempotent) or all sessions of a user.

Collaborators:
  - postgres.base.PostgresStore
  - postgres.queries (columns, row mapping, ttl_interval)
  - infrastructure.cleanup.CleanupQueue (through PostgresStore._schedule)

Notes:
  - `IS NOT DISTINCT FROM` gives the exact-or-absent semantics in one
    predicate: NULL matches only NULL, a value matches only the same value.
  - Expiry is evaluated with the database clock (now()).
============================================================
"""

from __future__ import annotations

from uuid import UUID

from ....crosscutting.exceptions import (
    CreatedTooFewRecordsError,
    CreatedTooManyRecordsError,
    TooFewRecordsError,
    check_single,
)
from ....domain.entities import IPAddress, Session
from .base import PostgresStore
from .queries import (
    SESSION_COLUMNS,
    SESSION_TABLE,
    USER_TABLE,
    row_to_session,
    ttl_interval,
)


class PostgresSessionStore(PostgresStore):
    """R: `warden."session"` table access."""

    _SQL_CREATE = f"""
        INSERT INTO {SESSION_TABLE} (user_id, ip, user_agent, expires_at)
        SELECT u.id, %s::inet, %s::text, now() + %s::interval
        FROM {USER_TABLE} u
        WHERE u.id = %s AND u.deleted_at IS NULL
        RETURNING {SESSION_COLUMNS}
    """

    _SQL_GET = f"""
        SELECT {SESSION_COLUMNS},
               (expires_at IS NOT NULL AND expires_at <= now()) AS expired
        FROM {SESSION_TABLE}
        WHERE id = %s
          AND ip IS NOT DISTINCT FROM %s::inet
          AND user_agent IS NOT DISTINCT FROM %s::text
    """

    # Re-checks expiry so a concurrent refresh is never deleted.
    _SQL_DELETE_EXPIRED = f"""
        DELETE FROM {SESSION_TABLE}
        WHERE id = %s AND expires_at IS NOT NULL AND expires_at <= now()
    """

    _SQL_DELETE = f"DELETE FROM {SESSION_TABLE} WHERE id = %s"

    _SQL_DELETE_FOR_USER = f"DELETE FROM {SESSION_TABLE} WHERE user_id = %s"

    _SQL_PURGE_EXPIRED = f"""
        DELETE FROM {SESSION_TABLE}
        WHERE expires_at IS NOT NULL AND expires_at <= now()
    """

    def create_session(
        self,
        user_id: UUID,
        ip: IPAddress | None,
        user_agent: str | None,
        ttl_seconds: int | None,
    ) -> Session:
        rows = self._fetchall(
            query=self._SQL_CREATE,
            params=(ip, user_agent, ttl_interval(ttl_seconds), user_id),
            context_msg="PostgresSessionStore: create_session failed",
            extra={"user_id": str(user_id), "ttl_seconds": ttl_seconds},
        )
        # Zero rows: the user does not exist (or is soft-deleted).
        check_single(
            len(rows),
            operation="create_session",
            too_few=CreatedTooFewRecordsError,
            too_many=CreatedTooManyRecordsError,
        )
        return row_to_session(rows[0])

    def get_session(
        self, session_id: UUID, ip: IPAddress | None, user_agent: str | None
    ) -> Session:
        row = self._fetchone(
            query=self._SQL_GET,
            params=(session_id, ip, user_agent),
            context_msg="PostgresSessionStore: get_session failed",
            extra={"session_id": str(session_id)},
        )
        if row is None:
            raise TooFewRecordsError(
                "get_session: no matching session", operation="get_session", count=0
            )

        if row[-1]:
            self._schedule(
                "delete_expired_session",
                query=self._SQL_DELETE_EXPIRED,
                params=(session_id,),
                extra={"session_id": str(session_id)},
            )
            raise TooFewRecordsError(
                "get_session: session expired", operation="get_session", count=0
            )

        return row_to_session(row)

    def delete_session(self, session_id: UUID) -> None:
        self._execute(
            query=self._SQL_DELETE,
            params=(session_id,),
            context_msg="PostgresSessionStore: delete_session failed",
            extra={"session_id": str(session_id)},
        )

    def delete_user_sessions(self, user_id: UUID) -> int:
        return self._execute(
            query=self._SQL_DELETE_FOR_USER,
            params=(user_id,),
            context_msg="PostgresSessionStore: delete_user_sessions failed",
            extra={"user_id": str(user_id)},
        )

    def purge_expired(self) -> int:
        return self._execute(
            query=self._SQL_PURGE_EXPIRED,
            params=(),
            context_msg="PostgresSessionStore: purge_expired failed",
            extra={},
        )
