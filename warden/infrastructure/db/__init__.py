"""
Database infrastructure (psycopg 3 connection pool).

Exports:
  - PoolConfig / open_pool: build an instrumented pool from explicit config
  - DatabaseConnectionError: the pool could not be opened or a connection acquired
"""

from .errors import DatabaseConnectionError
from .instrumentation import InstrumentedConnectionPool
from .pool import PoolConfig, open_pool

__all__ = [
    "PoolConfig",
    "open_pool",
    "InstrumentedConnectionPool",
    "DatabaseConnectionError",
]
