"""
Name: CLI Unit Tests

Responsibilities:
  - Argument parsing (modules, defaults, usage errors)
  - migrate: dry run prints the plan, --apply executes it
  - purge-expired: prints counts and always disconnects
  - Exit codes: 0 success, 1 warden/database error

Notes:
  - psycopg.connect, the runner and the driver are patched; no database
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from warden.crosscutting.config import Settings
from warden.crosscutting.exceptions import MigrationError
from warden.domain.entities import Module
from warden.migrations.runner import MigrationPlan, list_migrations


@pytest.mark.unit
class TestParser:
    def test_migrate_defaults(self):
        from warden.cli import build_parser

        args = build_parser().parse_args(["migrate"])

        assert args.modules == ["auth", "cache"]
        assert args.apply is False
        assert args.database_url is None

    def test_modules_are_normalized(self):
        from warden.cli import build_parser

        args = build_parser().parse_args(["migrate", "--modules", " Cache, auth ", "--apply"])

        assert args.modules == ["cache", "auth"]
        assert args.apply is True

    def test_unknown_module_is_usage_error(self):
        from warden.cli import build_parser

        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["migrate", "--modules", "auth,billing"])
        assert exc_info.value.code == 2

    def test_command_required(self):
        from warden.cli import build_parser

        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.unit
class TestMigrateCommand:
    def _patch_connect(self):
        conn = MagicMock()
        connect = MagicMock()
        connect.return_value.__enter__.return_value = conn
        return connect, conn

    def test_missing_database_url(self):
        from warden.cli import main

        with patch("warden.cli.get_settings", return_value=Settings(database_url="")):
            with pytest.raises(SystemExit) as exc_info:
                main(["migrate"])
        assert "WARDEN_DATABASE_URL" in str(exc_info.value.code)

    def test_dry_run_prints_sql(self, capsys):
        from warden.cli import main

        connect, conn = self._patch_connect()
        pending = MigrationPlan(Module.CACHE, None, tuple(list_migrations(Module.CACHE)))
        batch = MagicMock()
        batch.as_string.return_value = "-- rendered cache batch"

        with patch("warden.cli.psycopg.connect", connect), patch(
            "warden.cli.migrate", return_value=[pending]
        ) as migrate, patch("warden.cli.render_batch", return_value=batch):
            code = main(["migrate", "--database-url", "postgresql://x/db", "--modules", "cache"])

        out = capsys.readouterr().out
        assert code == 0
        connect.assert_called_once_with("postgresql://x/db", autocommit=True)
        migrate.assert_called_once_with(conn, ["cache"], dry_run=True)
        assert "cache: none -> 2024-10-03 (1 file(s))" in out
        assert "-- rendered cache batch" in out
        assert "Dry run" in out

    def test_apply(self, capsys):
        from warden.cli import main

        connect, conn = self._patch_connect()
        done = MigrationPlan(Module.BASE, list_migrations(Module.BASE)[-1].version)

        with patch("warden.cli.psycopg.connect", connect), patch(
            "warden.cli.migrate", return_value=[done]
        ) as migrate:
            code = main(["migrate", "--database-url", "postgresql://x/db", "--apply"])

        out = capsys.readouterr().out
        assert code == 0
        migrate.assert_called_once_with(conn, ["auth", "cache"], dry_run=False)
        assert "base: up to date" in out
        assert "Dry run" not in out

    def test_migration_error_exit_code(self, capsys):
        from warden.cli import main

        connect, _ = self._patch_connect()
        with patch("warden.cli.psycopg.connect", connect), patch(
            "warden.cli.migrate", side_effect=MigrationError("boom")
        ):
            code = main(["migrate", "--database-url", "postgresql://x/db", "--apply"])

        assert code == 1
        assert "error: boom" in capsys.readouterr().err


@pytest.mark.unit
class TestPurgeCommand:
    def test_prints_counts_and_disconnects(self, capsys):
        from warden.cli import main

        driver = MagicMock()
        driver.connect.return_value.purge_expired.return_value = {
            "sessions": 2,
            "cache": 0,
            "one_time_tokens": 1,
        }

        with patch("warden.cli.PostgresDriver", return_value=driver) as driver_cls:
            code = main(["purge-expired", "--database-url", "postgresql://x/db"])

        assert code == 0
        config = driver_cls.call_args.args[0]
        assert config.pool.conninfo == "postgresql://x/db"
        driver.disconnect.assert_called_once()
        assert json.loads(capsys.readouterr().out) == {
            "cache": 0,
            "one_time_tokens": 1,
            "sessions": 2,
        }

    def test_disconnects_on_failure(self):
        from warden.cli import main
        from warden.crosscutting.exceptions import DriverError

        driver = MagicMock()
        driver.connect.return_value.purge_expired.side_effect = DriverError("db down")

        with patch("warden.cli.PostgresDriver", return_value=driver):
            code = main(["purge-expired", "--database-url", "postgresql://x/db"])

        assert code == 1
        driver.disconnect.assert_called_once()
