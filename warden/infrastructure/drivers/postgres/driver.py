"""
===============================================================================
CRC CARD — infrastructure/drivers/postgres/driver.py
===============================================================================

Components:
  - PostgresConfig     (connection + pool + cleanup tuning)
  - PostgresDriver     (lifecycle: Disconnected <-> Connected)
  - PostgresConnection (capability handle: the only way to reach the data)

Responsibilities:
  - Open the pool and the cleanup queue on connect(); close both on
    disconnect().
  - Reject connect() while connected (AlreadyConnectedError) and
    disconnect() while disconnected (NotConnectedError).
  - Allow reconnecting: every connect() builds a fresh handle.
  - Make a stale handle fail fast with NotConnectedError.

Collaborators:
  - infrastructure/db/pool.open_pool
  - infrastructure/cleanup.CleanupQueue
  - postgres stores: users, sessions, tokens, cache

Principles:
  - Fail fast (double connect, double disconnect, use after disconnect).
  - Lifecycle transitions serialized by a lock.
===============================================================================
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable
from uuid import UUID

import psycopg

from ....crosscutting.exceptions import (
    AlreadyConnectedError,
    DriverError,
    NotConnectedError,
)
from ....crosscutting.logger import logger
from ....domain.codecs import MetadataCodec
from ....domain.entities import (
    IPAddress,
    OneTimeTokenType,
    Session,
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)
from ...cleanup import CleanupQueue
from ...db.instrumentation import InstrumentedConnectionPool
from ...db.pool import PoolConfig, open_pool
from .cache import PostgresCacheStore
from .sessions import PostgresSessionStore
from .tokens import PostgresOneTimeTokenStore
from .users import PostgresUserStore


@dataclass(frozen=True, slots=True)
class PostgresConfig:
    """Everything PostgresDriver needs; independent from environment variables."""

    pool: PoolConfig
    cleanup_workers: int = 2
    cleanup_max_pending: int = 1000

    @classmethod
    def from_url(cls, conninfo: str, **pool_kwargs) -> "PostgresConfig":
        return cls(pool=PoolConfig(conninfo=conninfo, **pool_kwargs))

    @classmethod
    def from_settings(cls, settings=None) -> "PostgresConfig":
        if settings is None:
            from ....crosscutting.config import get_settings

            settings = get_settings()

        return cls(
            pool=PoolConfig(
                conninfo=settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                timeout_seconds=settings.db_pool_timeout_seconds,
                statement_timeout_ms=settings.db_statement_timeout_ms,
                slow_query_seconds=settings.db_slow_query_seconds,
                healthcheck_on_acquire=settings.db_healthcheck_on_acquire,
            ),
            cleanup_workers=settings.cleanup_workers,
            cleanup_max_pending=settings.cleanup_max_pending,
        )


class PostgresConnection:
    """
    R: Connected handle. Obtained only from PostgresDriver.connect().

    Every operation checks the handle is still open; after the driver
    disconnects it raises NotConnectedError instead of touching a closed pool.
    """

    def __init__(
        self, pool: InstrumentedConnectionPool, cleanup: CleanupQueue
    ) -> None:
        self._pool = pool
        self._cleanup = cleanup
        self._open = True

        self._users = PostgresUserStore(pool, cleanup)
        self._sessions = PostgresSessionStore(pool, cleanup)
        self._tokens = PostgresOneTimeTokenStore(pool, cleanup)
        self._cache = PostgresCacheStore(pool, cleanup)

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def cleanup(self) -> CleanupQueue:
        return self._cleanup

    @property
    def pool(self) -> InstrumentedConnectionPool:
        self._require_open()
        return self._pool

    def _require_open(self) -> None:
        if not self._open:
            raise NotConnectedError("PostgresConnection is closed; call connect() again")

    def _close(self) -> None:
        self._open = False
        self._cleanup.shutdown(wait=True)
        try:
            self._pool.close()
        except psycopg.Error as exc:
            logger.exception("Closing DB pool failed", extra={"error": str(exc)})
            raise DriverError(f"Closing DB pool failed: {exc}", original_error=exc) from exc

    # --- Users ----------------------------------------------------------------
    def list_users(
        self,
        limit: int,
        offset: int,
        filters: UserSearchFields,
        metadata_codec: MetadataCodec,
    ) -> list[User]:
        self._require_open()
        return self._users.list_users(limit, offset, filters, metadata_codec)

    def create_user(self, insert: UserInsert, metadata_codec: MetadataCodec) -> User:
        self._require_open()
        return self._users.create_user(insert, metadata_codec)

    def update_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        patch: UserUpdate,
        metadata_codec: MetadataCodec,
    ) -> User:
        self._require_open()
        return self._users.update_user(match_field, match_value, patch, metadata_codec)

    def delete_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        metadata_codec: MetadataCodec,
    ) -> User:
        self._require_open()
        return self._users.delete_user(match_field, match_value, metadata_codec)

    # --- Sessions -------------------------------------------------------------
    def create_session(
        self,
        user_id: UUID,
        ip: IPAddress | None,
        user_agent: str | None,
        ttl_seconds: int | None,
    ) -> Session:
        self._require_open()
        return self._sessions.create_session(user_id, ip, user_agent, ttl_seconds)

    def get_session(
        self, session_id: UUID, ip: IPAddress | None, user_agent: str | None
    ) -> Session:
        self._require_open()
        return self._sessions.get_session(session_id, ip, user_agent)

    def delete_session(self, session_id: UUID) -> None:
        self._require_open()
        self._sessions.delete_session(session_id)

    def delete_user_sessions(self, user_id: UUID) -> int:
        self._require_open()
        return self._sessions.delete_user_sessions(user_id)

    # --- One-time tokens ------------------------------------------------------
    def create_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, ttl_seconds: int
    ) -> str:
        self._require_open()
        return self._tokens.create_one_time_token(user_id, token_type, ttl_seconds)

    def validate_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._require_open()
        self._tokens.validate_one_time_token(user_id, token_type, token)

    def use_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._require_open()
        self._tokens.use_one_time_token(user_id, token_type, token)

    def delete_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> None:
        self._require_open()
        self._tokens.delete_one_time_token(user_id, token_type)

    # --- Cache ----------------------------------------------------------------
    def set(
        self, resource_type: str, key: str, value: str, ttl_seconds: int | None
    ) -> None:
        self._require_open()
        self._cache.set(resource_type, key, value, ttl_seconds)

    def get(self, resource_type: str, key: str) -> str | None:
        self._require_open()
        return self._cache.get(resource_type, key)

    def delete(self, resource_type: str, key: str) -> None:
        self._require_open()
        self._cache.delete(resource_type, key)

    # --- Maintenance ----------------------------------------------------------
    def purge_expired(self) -> dict[str, int]:
        self._require_open()
        counts = {
            "sessions": self._sessions.purge_expired(),
            "cache": self._cache.purge_expired(),
            "one_time_tokens": self._tokens.purge_dead(),
        }
        logger.info("Purged expired records", extra=counts)
        return counts


@dataclass
class _DriverState:
    connection: PostgresConnection | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class PostgresDriver:
    """
    R: Disconnected handle for the PostgreSQL backend. Exposes no data
    operations; connect() returns the PostgresConnection that does.
    """

    def __init__(
        self,
        config: PostgresConfig,
        *,
        pool_factory: Callable[[PoolConfig], InstrumentedConnectionPool] = open_pool,
    ) -> None:
        self._config = config
        self._pool_factory = pool_factory
        self._state = _DriverState()

    @property
    def is_connected(self) -> bool:
        return self._state.connection is not None

    def connect(self) -> PostgresConnection:
        with self._state.lock:
            if self._state.connection is not None:
                raise AlreadyConnectedError("PostgresDriver is already connected")

            try:
                pool = self._pool_factory(self._config.pool)
            except psycopg.Error as exc:
                logger.exception("Opening DB pool failed", extra={"error": str(exc)})
                raise DriverError(
                    f"Opening DB pool failed: {exc}", original_error=exc
                ) from exc

            cleanup = CleanupQueue(
                workers=self._config.cleanup_workers,
                max_pending=self._config.cleanup_max_pending,
            )
            self._state.connection = PostgresConnection(pool, cleanup)
            logger.info("PostgresDriver connected")
            return self._state.connection

    def disconnect(self) -> None:
        with self._state.lock:
            connection = self._state.connection
            if connection is None:
                raise NotConnectedError("PostgresDriver is not connected")
            self._state.connection = None
            connection._close()
            logger.info("PostgresDriver disconnected")
