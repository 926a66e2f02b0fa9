"""
============================================================
CRC CARD — infrastructure/drivers/__init__.py
============================================================
Module: infrastructure.drivers (public export surface)

Responsibilities:
  - Expose the concrete drivers from one import path.
  - Keep a logical order (PostgreSQL first, then in-memory).

Policy:
  - Re-exports only; no side effects.
============================================================
"""

# ------------------------------------------------------------
# PostgreSQL (production)
# ------------------------------------------------------------
from .postgres import PostgresConfig, PostgresConnection, PostgresDriver

# ------------------------------------------------------------
# In-memory (tests / local dev)
# ------------------------------------------------------------
from .in_memory import InMemoryConnection, InMemoryDriver

__all__ = [
    # Postgres
    "PostgresConfig",
    "PostgresDriver",
    "PostgresConnection",
    # InMemory
    "InMemoryDriver",
    "InMemoryConnection",
]
