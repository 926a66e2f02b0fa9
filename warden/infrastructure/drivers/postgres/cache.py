"""
============================================================
CRC CARD — infrastructure/drivers/postgres/cache.py
============================================================
Class: PostgresCacheStore

Responsibilities:
  - Namespaced key/value cache with optional TTL.
  - Upsert on (resource_type, key); last write wins, no history.
  - Lazy expiry: expired reads return None and the row is deleted on the
    cleanup queue.

Collaborators:
  - postgres.base.PostgresStore

Notes:
  - The `cache` table is UNLOGGED: PostgreSQL truncates it after a crash and
    it is not replicated. Treat every entry as disposable.
============================================================
"""

from __future__ import annotations

from .base import PostgresStore
from .queries import CACHE_TABLE, ttl_interval


class PostgresCacheStore(PostgresStore):
    """R: `warden."cache"` table access."""

    _SQL_SET = f"""
        INSERT INTO {CACHE_TABLE} (resource_type, key, value, expires_at)
        VALUES (%s, %s, %s, now() + %s::interval)
        ON CONFLICT (resource_type, key)
        DO UPDATE SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at
    """

    _SQL_GET = f"""
        SELECT value, (expires_at IS NOT NULL AND expires_at <= now()) AS expired
        FROM {CACHE_TABLE}
        WHERE resource_type = %s AND key = %s
    """

    # Re-checks expiry so a value rewritten in the meantime survives.
    _SQL_DELETE_EXPIRED = f"""
        DELETE FROM {CACHE_TABLE}
        WHERE resource_type = %s AND key = %s
          AND expires_at IS NOT NULL AND expires_at <= now()
    """

    _SQL_DELETE = f"DELETE FROM {CACHE_TABLE} WHERE resource_type = %s AND key = %s"

    _SQL_PURGE_EXPIRED = f"""
        DELETE FROM {CACHE_TABLE}
        WHERE expires_at IS NOT NULL AND expires_at <= now()
    """

    def set(
        self, resource_type: str, key: str, value: str, ttl_seconds: int | None
    ) -> None:
        self._execute(
            query=self._SQL_SET,
            params=(resource_type, key, value, ttl_interval(ttl_seconds)),
            context_msg="PostgresCacheStore: set failed",
            extra={"resource_type": resource_type, "ttl_seconds": ttl_seconds},
        )

    def get(self, resource_type: str, key: str) -> str | None:
        row = self._fetchone(
            query=self._SQL_GET,
            params=(resource_type, key),
            context_msg="PostgresCacheStore: get failed",
            extra={"resource_type": resource_type},
        )
        if row is None:
            return None

        value, expired = row
        if expired:
            self._schedule(
                "delete_expired_cache_entry",
                query=self._SQL_DELETE_EXPIRED,
                params=(resource_type, key),
                extra={"resource_type": resource_type},
            )
            return None
        return value

    def delete(self, resource_type: str, key: str) -> None:
        self._execute(
            query=self._SQL_DELETE,
            params=(resource_type, key),
            context_msg="PostgresCacheStore: delete failed",
            extra={"resource_type": resource_type},
        )

    def purge_expired(self) -> int:
        return self._execute(
            query=self._SQL_PURGE_EXPIRED,
            params=(),
            context_msg="PostgresCacheStore: purge_expired failed",
            extra={},
        )
