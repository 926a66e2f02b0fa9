"""
Name: warden command line

Responsibilities:
  - `warden migrate`: show (default) or apply pending schema migrations
  - `warden purge-expired`: delete expired sessions / cache rows and revoke
    dead one-time tokens (external reaper, e.g. from cron)

Collaborators:
  - migrations.runner (plan / render / apply)
  - infrastructure.drivers.postgres (purge_expired)
  - crosscutting.config (WARDEN_DATABASE_URL fallback)

Notes:
  - Exit code 0 on success, 1 on a warden/database error, 2 on usage errors
  - Every run gets an operation_id in the log context
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence
from uuid import uuid4

import psycopg

from .context import clear_context, set_operation_context
from .crosscutting.config import get_settings
from .crosscutting.exceptions import WardenError
from .crosscutting.logger import logger
from .domain.entities import Module
from .infrastructure.drivers.postgres import PostgresConfig, PostgresDriver
from .migrations.runner import MigrationPlan, migrate, render_batch


def _parse_modules(raw: str) -> list[str]:
    modules = [m.strip().lower() for m in raw.split(",") if m.strip()]
    valid = {m.value for m in Module}
    unknown = [m for m in modules if m not in valid]
    if unknown:
        raise argparse.ArgumentTypeError(
            f"unknown module(s): {', '.join(unknown)} (choose from {', '.join(sorted(valid))})"
        )
    return modules


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warden", description="warden schema and maintenance commands."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    migrate_cmd = sub.add_parser("migrate", help="Show or apply pending migrations.")
    migrate_cmd.add_argument(
        "--database-url",
        help="PostgreSQL URL (default: WARDEN_DATABASE_URL)",
    )
    migrate_cmd.add_argument(
        "--modules",
        type=_parse_modules,
        default=[Module.AUTH.value, Module.CACHE.value],
        help="Comma separated modules (default: auth,cache; base is always included)",
    )
    migrate_cmd.add_argument(
        "--apply",
        action="store_true",
        help="Execute the migrations (default is a dry run that prints the SQL)",
    )

    purge_cmd = sub.add_parser(
        "purge-expired", help="Delete expired sessions/cache entries and dead tokens."
    )
    purge_cmd.add_argument(
        "--database-url",
        help="PostgreSQL URL (default: WARDEN_DATABASE_URL)",
    )
    return parser


def _require_database_url(explicit: str | None) -> str:
    db_url = explicit or get_settings().database_url
    if not db_url:
        raise SystemExit("WARDEN_DATABASE_URL (or --database-url) is required.")
    return db_url


def _describe(p: MigrationPlan) -> str:
    current = p.current_version.isoformat() if p.current_version else "none"
    if not p.pending:
        return f"{p.module.value}: up to date ({current})"
    target = p.target_version.isoformat()
    return f"{p.module.value}: {current} -> {target} ({len(p.files)} file(s))"


def _run_migrate(args: argparse.Namespace) -> int:
    db_url = _require_database_url(args.database_url)
    with psycopg.connect(db_url, autocommit=True) as conn:
        plans = migrate(conn, args.modules, dry_run=not args.apply)
        for p in plans:
            print(_describe(p))
            if not args.apply and p.pending:
                print(render_batch(p).as_string(conn))
    if not args.apply and any(p.pending for p in plans):
        print("Dry run: nothing was applied. Re-run with --apply.")
    return 0


def _run_purge(args: argparse.Namespace) -> int:
    db_url = _require_database_url(args.database_url)
    driver = PostgresDriver(PostgresConfig.from_url(db_url, min_size=1, max_size=2))
    connection = driver.connect()
    try:
        counts = connection.purge_expired()
    finally:
        driver.disconnect()
    print(json.dumps(counts, sort_keys=True))
    return 0


_COMMANDS = {
    "migrate": _run_migrate,
    "purge-expired": _run_purge,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    set_operation_context(operation_id=str(uuid4()), operation=args.command)
    try:
        return _COMMANDS[args.command](args)
    except (WardenError, psycopg.Error) as exc:
        logger.error(
            "Command failed", extra={"command": args.command, "error": str(exc)}
        )
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        clear_context()


if __name__ == "__main__":
    raise SystemExit(main())
