"""
===============================================================================
CRC CARD — infrastructure/db/pool.py
===============================================================================

Component:
  PostgreSQL connection pool factory

Responsibilities:
  - Open a size-bounded psycopg_pool.ConnectionPool for one driver.
  - Configure each new connection (statement_timeout).
  - Return the instrumented facade (slow-query logs, healthcheck).

Collaborators:
  - psycopg_pool.ConnectionPool
  - infrastructure/db/instrumentation.InstrumentedConnectionPool
  - infrastructure/drivers/postgres/driver.PostgresDriver (owns the lifecycle)

Principles:
  - Fail fast: a pool that cannot open raises DatabaseConnectionError.
  - One pool per connected driver; no module-level singleton.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg_pool import ConnectionPool, PoolTimeout

from ...crosscutting.logger import logger
from .errors import DatabaseConnectionError
from .instrumentation import InstrumentedConnectionPool


@dataclass(frozen=True, slots=True)
class PoolConfig:
    conninfo: str
    min_size: int = 1
    max_size: int = 10
    timeout_seconds: float = 5.0
    statement_timeout_ms: int = 30000
    slow_query_seconds: float = 0.25
    healthcheck_on_acquire: bool = True


def _connection_configurator(statement_timeout_ms: int):
    def configure(conn) -> None:
        # Guardrail against hung queries.
        if statement_timeout_ms > 0:
            conn.execute(f"SET statement_timeout = {int(statement_timeout_ms)}")
            conn.commit()

    return configure


def open_pool(config: PoolConfig) -> InstrumentedConnectionPool:
    """Open and warm up a pool; raises DatabaseConnectionError on failure."""
    logger.info(
        "Opening DB pool",
        extra={"min_size": config.min_size, "max_size": config.max_size},
    )

    real_pool = ConnectionPool(
        conninfo=config.conninfo,
        min_size=config.min_size,
        max_size=config.max_size,
        timeout=config.timeout_seconds,
        configure=_connection_configurator(config.statement_timeout_ms),
        name="warden",
        open=False,
    )
    try:
        real_pool.open(wait=config.min_size > 0, timeout=config.timeout_seconds)
    except PoolTimeout as exc:
        real_pool.close()
        raise DatabaseConnectionError(
            "DB pool did not become ready in time", original_error=exc
        ) from exc

    logger.info(
        "DB pool ready",
        extra={"min_size": config.min_size, "max_size": config.max_size},
    )
    return InstrumentedConnectionPool(
        real_pool,
        slow_query_seconds=config.slow_query_seconds,
        healthcheck=config.healthcheck_on_acquire,
    )
