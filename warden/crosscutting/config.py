"""
Name: Engine Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables (prefix WARDEN_) at startup
  - Provide defaults for pool sizing, TTLs and cleanup workers

Collaborators:
  - container.py: builds drivers from settings
  - application/auth.py: default session/reset TTLs and cookie secret
  - cli.py: database URL fallback

Notes:
  - Singleton via lru_cache; tests call get_settings.cache_clear()
  - Nothing in the driver layer reads settings implicitly: drivers receive a
    PostgresConfig so they stay usable without environment variables
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_COOKIE_SECRET = "dev-cookie-secret"


class Settings(BaseSettings):
    """
    Settings loaded from environment variables (WARDEN_*) or a .env file.

    Attributes:
        database_url: PostgreSQL connection string (empty = not configured)
        app_env: development / test / production
        db_pool_min_size: connections kept open (default: 1)
        db_pool_max_size: upper bound of the pool (default: 10)
        db_pool_timeout_seconds: max wait to acquire a connection
        db_statement_timeout_ms: per-connection statement_timeout (0 = off)
        db_slow_query_seconds: threshold for slow query warnings
        db_healthcheck_on_acquire: run SELECT 1 when a connection is borrowed
        cookie_secret: HMAC key for session cookies
        session_ttl_seconds: default TTL for sessions issued by log_in_user
        password_reset_ttl_seconds: TTL for password reset tokens
        cleanup_workers: threads draining lazy-expiry deletes
        cleanup_max_pending: queued cleanup jobs before new ones are dropped
        log_level: logging level name
        log_json: JSON formatter (True) or plain text
    """

    model_config = SettingsConfigDict(
        env_prefix="WARDEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = ""
    app_env: str = "development"

    # Database - Connection Pool
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    db_pool_timeout_seconds: float = 5.0
    db_statement_timeout_ms: int = 30000
    db_slow_query_seconds: float = 0.25
    db_healthcheck_on_acquire: bool = True

    # Sessions / tokens
    cookie_secret: str = DEFAULT_COOKIE_SECRET
    session_ttl_seconds: int | None = 60 * 60 * 24 * 30
    password_reset_ttl_seconds: int = 60 * 60

    # Lazy-expiry cleanup
    cleanup_workers: int = 2
    cleanup_max_pending: int = 1000

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("db_pool_min_size")
    @classmethod
    def pool_min_size_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("db_pool_min_size must be >= 0")
        return v

    @field_validator("db_pool_max_size", "cleanup_workers", "cleanup_max_pending")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("session_ttl_seconds", "password_reset_ttl_seconds")
    @classmethod
    def ttl_must_be_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("TTL must be greater than 0 seconds")
        return v

    @model_validator(mode="after")
    def validate_pool_bounds(self):
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError(
                f"db_pool_min_size ({self.db_pool_min_size}) must be <= "
                f"db_pool_max_size ({self.db_pool_max_size})"
            )
        return self

    @model_validator(mode="after")
    def validate_security_requirements(self):
        if not self.is_production():
            return self

        insecure_secrets = {DEFAULT_COOKIE_SECRET, "changeme", "change-me", "secret"}
        secret = (self.cookie_secret or "").strip()
        if not secret or secret in insecure_secrets:
            raise ValueError(
                "WARDEN_COOKIE_SECRET must be set to a strong, non-default value in production"
            )
        if len(secret) < 32:
            raise ValueError(
                "WARDEN_COOKIE_SECRET must be at least 32 characters in production"
            )
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
