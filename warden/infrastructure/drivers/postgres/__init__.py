"""PostgreSQL driver: raw parameterized SQL over a psycopg 3 pool."""

from .driver import PostgresConfig, PostgresConnection, PostgresDriver

__all__ = ["PostgresConfig", "PostgresDriver", "PostgresConnection"]
