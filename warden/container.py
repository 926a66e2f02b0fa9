"""
===============================================================================
CRC CARD — warden/container.py (composition root)
===============================================================================

Responsibilities:
  - Pick and build the driver from Settings (PostgreSQL or in-memory).
  - Build the facades for a connected handle.
  - Keep the process-wide driver as a lazy singleton (lru_cache).

Collaborators:
  - crosscutting.config.get_settings
  - infrastructure.drivers (PostgresDriver, InMemoryDriver)
  - application (AuthService, CacheService)

Notes:
  - No business logic here.
  - app_env in {"test", "testing", "ci"} or an empty database_url selects
    the in-memory driver.
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .application import AuthService, CacheService
from .crosscutting.config import Settings, get_settings
from .crosscutting.logger import logger
from .domain.codecs import MetadataCodec
from .domain.drivers import ConnectedDriver
from .infrastructure.drivers import InMemoryDriver, PostgresConfig, PostgresDriver


def _is_test_env(settings: Settings) -> bool:
    return settings.app_env.strip().lower() in {"test", "testing", "ci"}


def build_driver(settings: Settings | None = None) -> PostgresDriver | InMemoryDriver:
    """New, disconnected driver for the given settings."""
    settings = settings or get_settings()

    if _is_test_env(settings) or not settings.database_url:
        if not _is_test_env(settings):
            logger.warning("WARDEN_DATABASE_URL not set; using the in-memory driver")
        return InMemoryDriver(
            cleanup_workers=settings.cleanup_workers,
            cleanup_max_pending=settings.cleanup_max_pending,
        )

    return PostgresDriver(PostgresConfig.from_settings(settings))


@lru_cache(maxsize=1)
def get_driver() -> PostgresDriver | InMemoryDriver:
    """Process-wide driver (disconnected until the caller connects it)."""
    return build_driver()


def build_auth_service(
    connection: ConnectedDriver,
    *,
    metadata_codec: MetadataCodec | None = None,
    settings: Settings | None = None,
) -> AuthService:
    return AuthService(
        connection,
        metadata_codec=metadata_codec,
        settings=settings or get_settings(),
    )


def build_cache_service(connection: ConnectedDriver) -> CacheService:
    return CacheService(connection)
