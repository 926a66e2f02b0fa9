"""
Name: Integration Test DB Setup

Responsibilities:
  - Apply the warden migrations once per test session (base, auth, cache)
  - Provide a connected PostgresDriver per test on clean tables
  - Provide a raw autocommit connection for arranging/inspecting rows

Notes:
  - Only runs when RUN_INTEGRATION=1
  - Uses WARDEN_TEST_DATABASE_URL, then DATABASE_URL, then a local default
"""

from __future__ import annotations

import os

import psycopg
import pytest

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = os.getenv("POSTGRES_HOST_PORT", "5432")
DB_NAME = os.getenv("POSTGRES_DB", "warden")
DEFAULT_DATABASE_URL = (
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

DATABASE_URL = os.getenv("WARDEN_TEST_DATABASE_URL") or os.getenv(
    "DATABASE_URL", DEFAULT_DATABASE_URL
)

_TABLES = ('warden."one_time_token"', 'warden."session"', 'warden."user"', 'warden."cache"')


def _enabled() -> bool:
    return os.getenv("RUN_INTEGRATION") == "1"


@pytest.fixture(scope="session")
def database_url() -> str:
    return DATABASE_URL


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> None:
    """Bring the schema up to date through the warden runner."""
    if not _enabled():
        return

    from warden.migrations.runner import migrate

    with psycopg.connect(DATABASE_URL, autocommit=True) as conn:
        migrate(conn, ["auth", "cache"], dry_run=False)


@pytest.fixture
def raw_conn(apply_migrations):
    with psycopg.connect(DATABASE_URL, autocommit=True) as conn:
        yield conn


@pytest.fixture
def clean_tables(raw_conn) -> None:
    raw_conn.execute(f"TRUNCATE {', '.join(_TABLES)}")


@pytest.fixture
def pg_driver(clean_tables):
    from warden.infrastructure.db import PoolConfig
    from warden.infrastructure.drivers.postgres import PostgresConfig, PostgresDriver

    config = PostgresConfig(
        pool=PoolConfig(conninfo=DATABASE_URL, min_size=1, max_size=4),
        cleanup_workers=1,
    )
    driver = PostgresDriver(config)
    yield driver
    if driver.is_connected:
        driver.disconnect()


@pytest.fixture
def pg_connection(pg_driver):
    return pg_driver.connect()
