"""
Schema migrations (per module, packaged SQL files).

Exports:
  - migrate / plan / apply / render_batch
  - list_migrations / get_module_version
"""

from .runner import (
    MigrationFile,
    MigrationPlan,
    apply,
    get_module_version,
    list_migrations,
    migrate,
    plan,
    render_batch,
)

__all__ = [
    "MigrationFile",
    "MigrationPlan",
    "list_migrations",
    "get_module_version",
    "plan",
    "render_batch",
    "apply",
    "migrate",
]
