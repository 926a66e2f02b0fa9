"""
===============================================================================
CRC CARD — migrations/runner.py
===============================================================================

Component:
  Per-module schema migration runner

Responsibilities:
  - Enumerate packaged SQL files (`sql/<module>/<YYYY-MM-DD>.sql`).
  - Read the current version of each module from warden."module_version".
  - Plan: files strictly newer than the current version (all of them when the
    module was never migrated), ascending by date.
  - Apply: run the concatenated files plus a version upsert in ONE
    transaction, serialized across processes by an advisory lock.

Collaborators:
  - psycopg (autocommit Connection, psycopg.sql for literals)
  - importlib.resources (SQL files ship inside the package)
  - cli.py (`warden migrate`)

Rules:
  - `base` is always planned, and always first; auth/cache depend on it.
  - Nothing pending -> nothing is written.
  - The version only moves forward (upsert guarded by `version < excluded`).
  - The plan is recomputed after the lock is taken, so two concurrent runners
    never apply the same file twice.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from importlib import resources
from typing import Iterable, Sequence

import psycopg
from psycopg import sql

from ..crosscutting.exceptions import MigrationError
from ..crosscutting.logger import logger
from ..domain.entities import Module

SCHEMA = "warden"

# Same key for every runner; held until the transaction ends.
ADVISORY_LOCK_KEY = "warden.migrations"

_SQL_SCHEMA_EXISTS = (
    "SELECT EXISTS (SELECT 1 FROM information_schema.schemata WHERE schema_name = %s)"
)
_SQL_VERSION_TABLE = "SELECT to_regclass('warden.\"module_version\"') IS NOT NULL"
_SQL_MODULE_VERSION = (
    'SELECT version FROM warden."module_version" WHERE module::text = %s'
)
_SQL_LOCK = "SELECT pg_advisory_xact_lock(hashtext(%s))"


@dataclass(frozen=True, slots=True)
class MigrationFile:
    module: Module
    version: date
    name: str
    body: str


@dataclass(frozen=True, slots=True)
class MigrationPlan:
    """Pending files for one module, ascending by version."""

    module: Module
    current_version: date | None
    files: tuple[MigrationFile, ...] = field(default_factory=tuple)

    @property
    def pending(self) -> bool:
        return bool(self.files)

    @property
    def target_version(self) -> date | None:
        return self.files[-1].version if self.files else self.current_version


# =============================================================================
# Files
# =============================================================================


def _parse_version(module: Module, name: str) -> date:
    stem = name.removesuffix(".sql")
    try:
        return date.fromisoformat(stem)
    except ValueError as exc:
        raise MigrationError(
            f"Invalid migration file name {module.value}/{name}: expected YYYY-MM-DD.sql",
            original_error=exc,
        ) from exc


def list_migrations(module: Module | str) -> list[MigrationFile]:
    """Packaged migration files of a module, ascending by version."""
    module = Module(module)
    folder = resources.files("warden.migrations").joinpath("sql", module.value)
    if not folder.is_dir():
        raise MigrationError(f"No migrations packaged for module {module.value!r}")

    files = [
        MigrationFile(
            module=module,
            version=_parse_version(module, entry.name),
            name=entry.name,
            body=entry.read_text(encoding="utf-8"),
        )
        for entry in folder.iterdir()
        if entry.name.endswith(".sql")
    ]
    files.sort(key=lambda f: f.version)

    seen: set[date] = set()
    for f in files:
        if f.version in seen:
            raise MigrationError(f"Duplicate migration version {module.value}/{f.version}")
        seen.add(f.version)
    return files


def resolve_modules(modules: Iterable[Module | str]) -> list[Module]:
    """`base` first, then the requested modules in declaration order, deduplicated."""
    try:
        wanted = {Module(m) for m in modules}
    except ValueError as exc:
        raise MigrationError(f"Unknown module: {exc}", original_error=exc) from exc
    wanted.add(Module.BASE)
    return [m for m in Module if m in wanted]


# =============================================================================
# Database state
# =============================================================================


def schema_exists(conn: psycopg.Connection) -> bool:
    row = conn.execute(_SQL_SCHEMA_EXISTS, (SCHEMA,)).fetchone()
    return bool(row and row[0])


def get_module_version(conn: psycopg.Connection, module: Module | str) -> date | None:
    """Current version of a module; None when it was never migrated."""
    module = Module(module)
    if not schema_exists(conn):
        return None
    row = conn.execute(_SQL_VERSION_TABLE).fetchone()
    if not row or not row[0]:
        return None
    row = conn.execute(_SQL_MODULE_VERSION, (module.value,)).fetchone()
    return row[0] if row else None


def plan_module(conn: psycopg.Connection, module: Module | str) -> MigrationPlan:
    module = Module(module)
    current = get_module_version(conn, module)
    files = tuple(
        f for f in list_migrations(module) if current is None or f.version > current
    )
    return MigrationPlan(module=module, current_version=current, files=files)


def plan(
    conn: psycopg.Connection, modules: Iterable[Module | str]
) -> list[MigrationPlan]:
    return [plan_module(conn, m) for m in resolve_modules(modules)]


# =============================================================================
# Rendering / applying
# =============================================================================


def render_batch(migration: MigrationPlan) -> sql.Composed:
    """Concatenated file bodies + the version upsert, as one script."""
    if not migration.pending:
        raise MigrationError(f"Nothing to render for module {migration.module.value}")

    parts: list[sql.Composable] = []
    for f in migration.files:
        parts.append(sql.SQL(f"-- {f.module.value}/{f.name}\n"))
        parts.append(sql.SQL(f.body.rstrip().rstrip(";") + ";\n\n"))

    parts.append(
        sql.SQL(
            'INSERT INTO warden."module_version" (module, version)\n'
            'VALUES ({module}::warden."module", {version}::date)\n'
            "ON CONFLICT (module) DO UPDATE SET version = EXCLUDED.version\n"
            'WHERE warden."module_version".version < EXCLUDED.version;\n'
        ).format(
            module=sql.Literal(migration.module.value),
            version=sql.Literal(migration.target_version.isoformat()),
        )
    )
    return sql.Composed(parts)


def apply(conn: psycopg.Connection, migration: MigrationPlan) -> MigrationPlan:
    """
    Apply one module inside a single transaction.

    Returns the plan that was actually executed (re-read under the lock);
    its `files` are empty when another runner got there first.
    """
    _require_autocommit(conn)
    module = migration.module

    try:
        with conn.transaction():
            conn.execute(_SQL_LOCK, (ADVISORY_LOCK_KEY,))
            fresh = plan_module(conn, module)
            if not fresh.pending:
                logger.info("Module already up to date", extra={"schema_module": module.value})
                return fresh

            conn.execute(render_batch(fresh))
    except psycopg.Error as exc:
        logger.exception(
            "Migration failed", extra={"schema_module": module.value, "error": str(exc)}
        )
        raise MigrationError(
            f"Migration of module {module.value} failed: {exc}", original_error=exc
        ) from exc

    logger.info(
        "Module migrated",
        extra={
            "schema_module": module.value,
            "from_version": str(fresh.current_version) if fresh.current_version else None,
            "to_version": str(fresh.target_version),
            "files": [f.name for f in fresh.files],
        },
    )
    return fresh


def migrate(
    conn: psycopg.Connection,
    modules: Sequence[Module | str],
    *,
    dry_run: bool = True,
) -> list[MigrationPlan]:
    """
    Plan (dry_run=True) or apply the given modules, `base` included.

    Returns one plan per module in execution order.
    """
    _require_autocommit(conn)
    plans = plan(conn, modules)
    if dry_run:
        return plans
    return [apply(conn, p) if p.pending else p for p in plans]


def _require_autocommit(conn: psycopg.Connection) -> None:
    if not conn.autocommit:
        raise MigrationError(
            "The migration runner needs an autocommit connection "
            "(psycopg.connect(url, autocommit=True))"
        )
