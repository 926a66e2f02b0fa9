"""
Name: Database Pool Tests

Responsibilities:
  - open_pool builds a ConnectionPool from PoolConfig and instruments it
  - Pool timeouts become DatabaseConnectionError
  - Borrowed connections are timed and health-checked

Notes:
  - Uses mocking for ConnectionPool (no real DB)
"""

from unittest.mock import MagicMock, patch

import psycopg
import pytest


@pytest.mark.unit
class TestOpenPool:
    def test_open_pool_returns_instrumented_pool(self):
        from warden.infrastructure.db.instrumentation import InstrumentedConnectionPool
        from warden.infrastructure.db.pool import PoolConfig, open_pool

        with patch("warden.infrastructure.db.pool.ConnectionPool") as MockPool:
            real = MagicMock()
            MockPool.return_value = real

            pool = open_pool(PoolConfig(conninfo="postgresql://test", min_size=2, max_size=4))

            kwargs = MockPool.call_args.kwargs
            assert kwargs["min_size"] == 2
            assert kwargs["max_size"] == 4
            assert kwargs["open"] is False
            real.open.assert_called_once()
            assert isinstance(pool, InstrumentedConnectionPool)

    def test_timeout_raises_connection_error(self):
        from psycopg_pool import PoolTimeout

        from warden.infrastructure.db.errors import DatabaseConnectionError
        from warden.infrastructure.db.pool import PoolConfig, open_pool

        with patch("warden.infrastructure.db.pool.ConnectionPool") as MockPool:
            real = MagicMock()
            real.open.side_effect = PoolTimeout("not ready")
            MockPool.return_value = real

            with pytest.raises(DatabaseConnectionError):
                open_pool(PoolConfig(conninfo="postgresql://test"))

            real.close.assert_called_once()

    def test_configurator_sets_statement_timeout(self):
        from warden.infrastructure.db.pool import _connection_configurator

        conn = MagicMock()
        _connection_configurator(1500)(conn)

        conn.execute.assert_called_once_with("SET statement_timeout = 1500")
        conn.commit.assert_called_once()


@pytest.mark.unit
class TestInstrumentedPool:
    def test_connection_is_health_checked_and_timed(self):
        from warden.infrastructure.db.instrumentation import (
            InstrumentedConnectionPool,
            TimedConnection,
        )

        raw_conn = MagicMock()
        inner = MagicMock()
        inner.connection.return_value.__enter__.return_value = raw_conn
        inner.connection.return_value.__exit__.return_value = False

        pool = InstrumentedConnectionPool(inner, healthcheck=True)
        with pool.connection() as conn:
            assert isinstance(conn, TimedConnection)
            conn.execute("SELECT 2")

        executed = [c.args[0] for c in raw_conn.execute.call_args_list]
        assert executed == ["SELECT 1", "SELECT 2"]

    def test_failed_healthcheck_raises(self):
        from warden.infrastructure.db.errors import DatabaseConnectionError
        from warden.infrastructure.db.instrumentation import InstrumentedConnectionPool

        raw_conn = MagicMock()
        raw_conn.execute.side_effect = psycopg.OperationalError("gone")
        inner = MagicMock()
        inner.connection.return_value.__enter__.return_value = raw_conn

        pool = InstrumentedConnectionPool(inner, healthcheck=True)
        with pytest.raises(DatabaseConnectionError):
            with pool.connection():
                pass

    def test_slow_query_logged(self, caplog):
        from warden.infrastructure.db.instrumentation import TimedConnection

        conn = TimedConnection(MagicMock(), slow_query_seconds=0.0)
        with caplog.at_level("WARNING", logger="warden"):
            conn.execute("UPDATE x SET y = 1")

        assert any(r.getMessage() == "Slow DB query" for r in caplog.records)
