"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure the test environment (no .env, app_env=test)
  - Register markers
  - Provide the in-memory driver, a controllable clock and the facades

Collaborators:
  - pytest: Test framework
  - warden.infrastructure.drivers.in_memory: backend for unit tests

Notes:
  - Fixtures are auto-discovered by pytest
  - Every test gets a fresh driver (function scope)
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("WARDEN_APP_ENV", "test")
os.environ.setdefault("WARDEN_LOG_JSON", "true")

from warden.crosscutting import config as warden_config  # noqa: E402

warden_config.Settings.model_config["env_file"] = None

from warden.application import AuthService, CacheService  # noqa: E402
from warden.crosscutting.config import Settings  # noqa: E402
from warden.infrastructure.drivers.in_memory import InMemoryDriver  # noqa: E402


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (PostgreSQL, RUN_INTEGRATION=1)"
    )


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """R: Explicit settings; never read from the environment of the machine."""
    return Settings(
        app_env="test",
        cookie_secret="unit-test-cookie-secret",
        session_ttl_seconds=3600,
        password_reset_ttl_seconds=600,
        cleanup_workers=1,
    )


@pytest.fixture
def memory_driver(clock: FakeClock):
    driver = InMemoryDriver(clock=clock)
    yield driver
    if driver.is_connected:
        driver.disconnect()


@pytest.fixture
def connection(memory_driver: InMemoryDriver):
    return memory_driver.connect()


@pytest.fixture
def auth(connection, settings: Settings) -> AuthService:
    return AuthService(connection, settings=settings)


@pytest.fixture
def cache(connection) -> CacheService:
    return CacheService(connection)
