"""
============================================================
CRC CARD — infrastructure/drivers/postgres/base.py
============================================================
Class: PostgresStore

Responsibilities:
  - Hold the (instrumented) pool and the cleanup queue shared by every store.
  - Run parameterized SQL with consistent logging and error wrapping:
    psycopg errors become DriverError, never swallowed.
  - Schedule best-effort background statements (lazy-expiry cleanup).

Collaborators:
  - psycopg / psycopg_pool
  - infrastructure.cleanup.CleanupQueue
  - crosscutting.exceptions.DriverError
  - crosscutting.logger.logger

Constraints:
  - SQL is always parameterized; only code-owned fragments are interpolated.
  - Arity errors raised inside `transaction()` blocks roll the write back.
============================================================
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator

import psycopg

from ....crosscutting.exceptions import DriverError
from ....crosscutting.logger import logger
from ...cleanup import CleanupQueue
from ...db.instrumentation import InstrumentedConnectionPool, TimedConnection

SCHEMA = "warden"


class PostgresStore:
    """R: Base class for the PostgreSQL stores (users, sessions, tokens, cache)."""

    def __init__(
        self, pool: InstrumentedConnectionPool, cleanup: CleanupQueue
    ) -> None:
        self._pool = pool
        self._cleanup = cleanup

    # =========================================================
    # Execution helpers (DRY + consistent errors)
    # =========================================================
    def _fetchall(
        self, *, query: str, params: Iterable[object], context_msg: str, extra: dict
    ) -> list[tuple]:
        try:
            with self._pool.connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except psycopg.Error as exc:
            raise self._wrap(exc, context_msg, extra) from exc

    def _fetchone(
        self, *, query: str, params: Iterable[object], context_msg: str, extra: dict
    ) -> tuple | None:
        try:
            with self._pool.connection() as conn:
                return conn.execute(query, tuple(params)).fetchone()
        except psycopg.Error as exc:
            raise self._wrap(exc, context_msg, extra) from exc

    def _execute(
        self, *, query: str, params: Iterable[object], context_msg: str, extra: dict
    ) -> int:
        """Run a statement and return its rowcount."""
        try:
            with self._pool.connection() as conn:
                return conn.execute(query, tuple(params)).rowcount
        except psycopg.Error as exc:
            raise self._wrap(exc, context_msg, extra) from exc

    @contextmanager
    def _transaction(self, *, context_msg: str, extra: dict) -> Iterator[TimedConnection]:
        """
        R: One connection + one transaction. Any exception inside the block
        rolls back; psycopg errors are re-raised as DriverError.
        """
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    yield conn
        except psycopg.Error as exc:
            raise self._wrap(exc, context_msg, extra) from exc

    @staticmethod
    def _wrap(exc: Exception, context_msg: str, extra: dict) -> DriverError:
        logger.exception(context_msg, extra={**extra, "error": str(exc)})
        return DriverError(f"{context_msg}: {exc}", original_error=exc)

    # =========================================================
    # Background cleanup
    # =========================================================
    def _schedule(
        self, description: str, *, query: str, params: Iterable[object], extra: dict
    ) -> None:
        """R: Fire-and-forget statement; failures are logged by the queue."""
        frozen_params = tuple(params)

        def job() -> None:
            self._execute(
                query=query,
                params=frozen_params,
                context_msg=f"{type(self).__name__}: {description} failed",
                extra=extra,
            )

        self._cleanup.submit(description, job)
