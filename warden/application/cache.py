"""
Name: CacheService / CacheNamespace

Responsibilities:
  - Public surface of the key/value cache on top of a connected CacheDriver
  - Bind keys to a resource type once (namespace()) instead of passing
    free-text strings around
  - Validate resource-type names (non-empty, no whitespace)

Collaborators:
  - domain.drivers.CacheDriver (PostgresConnection / InMemoryConnection)

Notes:
  - Values are opaque strings; callers serialize their own payloads
  - Cached data is disposable: the PostgreSQL table is UNLOGGED
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable

from ..domain.drivers import CacheDriver


class ResourceType(str, Enum):
    """Built-in cache namespaces."""

    SESSION = "session"
    USER = "user"
    RATE_LIMIT = "rate-limit"


def _validate_name(resource_type: ResourceType | str) -> str:
    name = resource_type.value if isinstance(resource_type, ResourceType) else resource_type
    if not isinstance(name, str) or not name:
        raise ValueError("resource_type must be a non-empty string")
    if any(ch.isspace() for ch in name):
        raise ValueError(f"resource_type must not contain whitespace: {name!r}")
    return name


class CacheNamespace:
    """Cache operations bound to one resource type."""

    def __init__(self, connection: CacheDriver, resource_type: str) -> None:
        self._conn = connection
        self._resource_type = resource_type

    @property
    def resource_type(self) -> str:
        return self._resource_type

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._conn.set(self._resource_type, key, value, ttl_seconds)

    def get(self, key: str) -> str | None:
        return self._conn.get(self._resource_type, key)

    def delete(self, key: str) -> None:
        self._conn.delete(self._resource_type, key)

    def get_or_set(
        self, key: str, factory: Callable[[], str], ttl_seconds: int | None = None
    ) -> str:
        """Cached value, or factory() stored under key. Not atomic."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, ttl_seconds)
        return value

    def __repr__(self) -> str:
        return f"CacheNamespace({self._resource_type!r})"


class CacheService:
    """
    Namespaced TTL cache.

    Example:
        cache = CacheService(connection)
        sessions = cache.namespace(ResourceType.SESSION)
        sessions.set("abc", "payload", ttl_seconds=60)
    """

    def __init__(self, connection: CacheDriver) -> None:
        self._conn = connection
        self._namespaces: dict[str, CacheNamespace] = {}
        self._lock = threading.Lock()

    def namespace(self, resource_type: ResourceType | str) -> CacheNamespace:
        """Registered namespace for resource_type (one instance per name)."""
        name = _validate_name(resource_type)
        with self._lock:
            ns = self._namespaces.get(name)
            if ns is None:
                ns = CacheNamespace(self._conn, name)
                self._namespaces[name] = ns
            return ns

    def registered(self) -> list[str]:
        with self._lock:
            return sorted(self._namespaces)

    def set(
        self,
        resource_type: ResourceType | str,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
    ) -> None:
        self._conn.set(_validate_name(resource_type), key, value, ttl_seconds)

    def get(self, resource_type: ResourceType | str, key: str) -> str | None:
        return self._conn.get(_validate_name(resource_type), key)

    def delete(self, resource_type: ResourceType | str, key: str) -> None:
        self._conn.delete(_validate_name(resource_type), key)
