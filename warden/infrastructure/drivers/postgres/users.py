"""
============================================================
CRC CARD — infrastructure/drivers/postgres/users.py
============================================================
Class: PostgresUserStore

Responsibilities:
  - List users with OR-composed LIKE ANY filters (non-deleted only).
  - Create users (password hashed here, never stored raw).
  - Partial updates: only Set fields are written; updated_at always bumped.
  - Soft delete (deleted_at = now()).
  - Enforce "exactly one row" on create/update/delete.

Collaborators:
  - postgres.base.PostgresStore (execution helpers)
  - postgres.queries (columns, builders, row mapping)
  - identity.passwords.hash_password
  - crosscutting.exceptions (arity errors)

Constraints / Notes:
  - email / phone_number are unique among non-deleted rows (partial unique
    indexes in the auth migration); violations surface as DriverError.
  - update/delete run inside a transaction: when the row count is not
    exactly one, the error is raised before commit and the write is undone.
  - Listing order is deterministic: id ASC (UUIDv7 is time ordered).
============================================================
"""

from __future__ import annotations

from ....crosscutting.exceptions import (
    CreatedTooFewRecordsError,
    CreatedTooManyRecordsError,
    DeletedTooFewRecordsError,
    DeletedTooManyRecordsError,
    UpdatedTooFewRecordsError,
    UpdatedTooManyRecordsError,
    check_single,
)
from ....domain.codecs import MetadataCodec
from ....domain.entities import (
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)
from ....identity.passwords import hash_password
from .base import PostgresStore
from .queries import (
    USER_COLUMNS,
    USER_TABLE,
    build_user_search,
    build_user_update,
    lookup_predicate,
    row_to_user,
    user_metadata_param,
)


class PostgresUserStore(PostgresStore):
    """R: `warden."user"` table access."""

    def list_users(
        self,
        limit: int,
        offset: int,
        filters: UserSearchFields,
        metadata_codec: MetadataCodec,
    ) -> list[User]:
        if limit <= 0:
            return []
        offset = max(offset, 0)

        search_sql, params = build_user_search(filters)
        conditions = ["deleted_at IS NULL"]
        if search_sql:
            conditions.append(search_sql)

        query = f"""
            SELECT {USER_COLUMNS}
            FROM {USER_TABLE}
            WHERE {" AND ".join(conditions)}
            ORDER BY id ASC
            LIMIT %s OFFSET %s
        """
        rows = self._fetchall(
            query=query,
            params=[*params, limit, offset],
            context_msg="PostgresUserStore: list_users failed",
            extra={"limit": limit, "offset": offset, "filters": search_sql},
        )
        return [row_to_user(r, metadata_codec) for r in rows]

    def create_user(
        self, insert: UserInsert, metadata_codec: MetadataCodec
    ) -> User:
        password_hash = (
            hash_password(insert.password) if insert.password is not None else None
        )
        query = f"""
            INSERT INTO {USER_TABLE} (
                role,
                email,
                password_hash,
                email_confirmed_at,
                phone_number,
                phone_number_confirmed_at,
                user_metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {USER_COLUMNS}
        """
        rows = self._fetchall(
            query=query,
            params=(
                insert.role,
                insert.email,
                password_hash,
                insert.email_confirmed_at,
                insert.phone_number,
                insert.phone_number_confirmed_at,
                user_metadata_param(metadata_codec, insert.user_metadata),
            ),
            context_msg="PostgresUserStore: create_user failed",
            extra={"email": insert.email},
        )
        check_single(
            len(rows),
            operation="create_user",
            too_few=CreatedTooFewRecordsError,
            too_many=CreatedTooManyRecordsError,
        )
        return row_to_user(rows[0], metadata_codec)

    def update_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        patch: UserUpdate,
        metadata_codec: MetadataCodec,
    ) -> User:
        assignments, params = build_user_update(patch, metadata_codec)
        query = f"""
            UPDATE {USER_TABLE}
            SET {", ".join(assignments)}
            WHERE {lookup_predicate(match_field)}
              AND deleted_at IS NULL
            RETURNING {USER_COLUMNS}
        """
        extra = {"match_field": UserLookupField(match_field).value}
        with self._transaction(
            context_msg="PostgresUserStore: update_user failed", extra=extra
        ) as conn:
            rows = conn.execute(query, (*params, match_value)).fetchall()
            check_single(
                len(rows),
                operation="update_user",
                too_few=UpdatedTooFewRecordsError,
                too_many=UpdatedTooManyRecordsError,
            )
        return row_to_user(rows[0], metadata_codec)

    def delete_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        metadata_codec: MetadataCodec,
    ) -> User:
        query = f"""
            UPDATE {USER_TABLE}
            SET deleted_at = now(), updated_at = now()
            WHERE {lookup_predicate(match_field)}
              AND deleted_at IS NULL
            RETURNING {USER_COLUMNS}
        """
        extra = {"match_field": UserLookupField(match_field).value}
        with self._transaction(
            context_msg="PostgresUserStore: delete_user failed", extra=extra
        ) as conn:
            rows = conn.execute(query, (match_value,)).fetchall()
            check_single(
                len(rows),
                operation="delete_user",
                too_few=DeletedTooFewRecordsError,
                too_many=DeletedTooManyRecordsError,
            )
        return row_to_user(rows[0], metadata_codec)
