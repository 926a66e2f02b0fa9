"""
============================================================
CRC CARD — infrastructure/drivers/in_memory/tables.py
============================================================
Class: InMemoryTables

Responsibilities:
  - Hold the "tables" of the in-memory driver (users, sessions, tokens,
    cache) and the lock that guards them.
  - Outlive connections: data survives disconnect()/connect() on the same
    InMemoryDriver, like rows survive in a database.

Helpers:
  - like_match: SQL LIKE semantics (% and _ wildcards, backslash escape,
    case-sensitive, whole-string match).
============================================================
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from uuid import UUID

from ....domain.entities import CacheEntry, OneTimeToken, Session, User


@dataclass
class InMemoryTables:
    """
    Mental model:
      - users    : UUID -> User (user_metadata kept in encoded JSON form)
      - sessions : UUID -> Session
      - tokens   : UUID -> OneTimeToken
      - cache    : (resource_type, key) -> CacheEntry
    Every read/write happens under `lock`.
    """

    users: dict[UUID, User] = field(default_factory=dict)
    sessions: dict[UUID, Session] = field(default_factory=dict)
    tokens: dict[UUID, OneTimeToken] = field(default_factory=dict)
    cache: dict[tuple[str, str], CacheEntry] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def clear(self) -> None:
        with self.lock:
            self.users.clear()
            self.sessions.clear()
            self.tokens.clear()
            self.cache.clear()


@lru_cache(maxsize=256)
def _like_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    escaped = False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    if escaped:
        # PostgreSQL rejects a trailing escape; treat it as a literal backslash.
        parts.append(re.escape("\\"))
    return re.compile("".join(parts), re.DOTALL)


def like_match(value: str | None, pattern: str) -> bool:
    """`value LIKE pattern`; NULL never matches."""
    if value is None:
        return False
    return _like_regex(pattern).fullmatch(value) is not None


def like_any(value: str | None, patterns: list[str]) -> bool:
    """`value LIKE ANY(patterns)`."""
    return any(like_match(value, p) for p in patterns)
