"""
===============================================================================
CRC CARD — infrastructure/db/instrumentation.py
===============================================================================

Classes:
  - TimedConnection (Proxy)
  - InstrumentedConnectionPool (Facade/Proxy)

Responsibilities:
  - Time conn.execute(...) without touching the stores.
  - Log slow queries (low cardinality: statement kind only, never SQL text).
  - Optional healthcheck when a connection is borrowed (SELECT 1).

Collaborators:
  - crosscutting.logger
  - psycopg_pool.ConnectionPool (real pool)
===============================================================================
"""

from __future__ import annotations

import time
from typing import Any, ContextManager

import psycopg

from ...crosscutting.logger import logger
from .errors import DatabaseConnectionError


def _statement_kind(sql: Any) -> str:
    """First keyword of the statement (SELECT/INSERT/...), for logs."""
    text = sql if isinstance(sql, str) else repr(sql)
    parts = text.lstrip().split(None, 1)
    return parts[0].upper() if parts else "UNKNOWN"


class TimedConnection:
    """
    Connection proxy: wraps execute() to measure latency.

    Everything else is delegated to the real connection via __getattr__.
    """

    def __init__(self, inner_conn, *, slow_query_seconds: float) -> None:
        self._conn = inner_conn
        self._slow = slow_query_seconds

    def execute(self, sql, *args, **kwargs):
        start = time.perf_counter()
        try:
            return self._conn.execute(sql, *args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            if elapsed >= self._slow:
                logger.warning(
                    "Slow DB query",
                    extra={"kind": _statement_kind(sql), "seconds": round(elapsed, 4)},
                )

    def __getattr__(self, item: str):
        return getattr(self._conn, item)


class _ConnectionContext(ContextManager[TimedConnection]):
    """Wraps the pool's context manager and hands out TimedConnection."""

    def __init__(
        self, inner_ctx, *, slow_query_seconds: float, healthcheck: bool
    ) -> None:
        self._inner_ctx = inner_ctx
        self._slow = slow_query_seconds
        self._healthcheck = healthcheck

    def __enter__(self) -> TimedConnection:
        try:
            conn = self._inner_ctx.__enter__()
        except Exception as exc:
            raise DatabaseConnectionError(
                "Could not acquire a DB connection", original_error=exc
            ) from exc

        if self._healthcheck:
            try:
                conn.execute("SELECT 1")
            except psycopg.Error as exc:
                self._inner_ctx.__exit__(type(exc), exc, exc.__traceback__)
                raise DatabaseConnectionError(
                    "DB connection failed its healthcheck", original_error=exc
                ) from exc

        return TimedConnection(conn, slow_query_seconds=self._slow)

    def __exit__(self, exc_type, exc, tb) -> bool:
        return self._inner_ctx.__exit__(exc_type, exc, tb)


class InstrumentedConnectionPool:
    """
    Facade over the real pool.

    Stores keep writing `with pool.connection() as conn:` and get a
    TimedConnection back.
    """

    def __init__(
        self,
        inner_pool,
        *,
        slow_query_seconds: float = 0.25,
        healthcheck: bool = True,
    ) -> None:
        self._pool = inner_pool
        self._slow_seconds = slow_query_seconds
        self._healthcheck = healthcheck

    def connection(self, *args, **kwargs) -> ContextManager[TimedConnection]:
        inner_ctx = self._pool.connection(*args, **kwargs)
        return _ConnectionContext(
            inner_ctx,
            slow_query_seconds=self._slow_seconds,
            healthcheck=self._healthcheck,
        )

    def __getattr__(self, item: str):
        return getattr(self._pool, item)
