"""
CRC — domain/drivers.py

Name
- Driver contract (Protocols)

Responsibilities
- Define the lifecycle every storage backend follows (Driver).
- Define the data operations reachable only from a connected handle
  (AuthDriver, CacheDriver, ConnectedDriver).
- Keep application code independent from PostgreSQL / in-memory backends.

Collaborators
- domain.entities / domain.codecs: types in the signatures
- infrastructure.drivers.postgres, infrastructure.drivers.in_memory: implementations
- application.auth / application.cache: consumers

Constraints
- Pure interfaces: no SQL, no infrastructure imports.
- Implementations MUST match method signatures exactly.

Notes
- Lifecycle: Disconnected -> connect() -> Connected -> disconnect() -> Disconnected.
  connect() is the only way to obtain a ConnectedDriver, so data operations
  cannot be called on a disconnected driver. A handle kept after disconnect()
  raises NotConnectedError on every call.
- Error classes per operation are documented on each method; see
  crosscutting.exceptions.
"""

from __future__ import annotations

from typing import Protocol, TypeVar
from uuid import UUID

from .codecs import MetadataCodec
from .entities import (
    IPAddress,
    OneTimeTokenType,
    Session,
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)

M = TypeVar("M")
HandleT = TypeVar("HandleT", covariant=True)


class AuthDriver(Protocol):
    """Users, sessions and one-time tokens."""

    # --- Users ---------------------------------------------------------------
    def list_users(
        self,
        limit: int,
        offset: int,
        filters: UserSearchFields,
        metadata_codec: MetadataCodec[M],
    ) -> list[User[M]]:
        """
        R: Non-deleted users whose present filter columns match any pattern
        (LIKE ANY), present columns OR-ed. Raises DriverError.
        """
        ...

    def create_user(
        self, insert: UserInsert[M], metadata_codec: MetadataCodec[M]
    ) -> User[M]:
        """R: Raises DriverError, HashError, CreatedTooFew/TooManyRecordsError."""
        ...

    def update_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        patch: UserUpdate[M],
        metadata_codec: MetadataCodec[M],
    ) -> User[M]:
        """
        R: Partial update of one non-deleted user; updated_at always bumped.
        Raises DriverError, HashError, UpdatedTooFew/TooManyRecordsError.
        """
        ...

    def delete_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        metadata_codec: MetadataCodec[M],
    ) -> User[M]:
        """R: Soft delete. Raises DriverError, DeletedTooFew/TooManyRecordsError."""
        ...

    # --- Sessions ------------------------------------------------------------
    def create_session(
        self,
        user_id: UUID,
        ip: IPAddress | None,
        user_agent: str | None,
        ttl_seconds: int | None,
    ) -> Session:
        """R: ttl_seconds None = never expires. Unknown user -> CreatedTooFewRecordsError."""
        ...

    def get_session(
        self, session_id: UUID, ip: IPAddress | None, user_agent: str | None
    ) -> Session:
        """
        R: Compound match (id + exact-or-absent ip/user_agent). Expired matches
        raise TooFewRecordsError and are deleted in the background.
        """
        ...

    def delete_session(self, session_id: UUID) -> None:
        """R: Idempotent delete by id."""
        ...

    def delete_user_sessions(self, user_id: UUID) -> int:
        """R: Delete every session of a user; returns how many were removed."""
        ...

    # --- One-time tokens -----------------------------------------------------
    def create_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, ttl_seconds: int
    ) -> str:
        """R: Returns the raw token once; replaces any active token of the same type."""
        ...

    def validate_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        """R: Raises TooFewRecordsError unless the token is active, unused and unexpired."""
        ...

    def use_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        """R: Marks used_at. Raises UpdatedTooFewRecordsError on reuse/expiry/mismatch."""
        ...

    def delete_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> None:
        """R: Revokes the active token. Raises DeletedTooFewRecordsError if none."""
        ...


class CacheDriver(Protocol):
    """Namespaced TTL key/value store."""

    def set(
        self, resource_type: str, key: str, value: str, ttl_seconds: int | None
    ) -> None:
        """R: Upsert on (resource_type, key); last write wins."""
        ...

    def get(self, resource_type: str, key: str) -> str | None:
        """R: None on miss or expiry (expired rows are deleted in the background)."""
        ...

    def delete(self, resource_type: str, key: str) -> None:
        """R: Idempotent delete."""
        ...


class ConnectedDriver(AuthDriver, CacheDriver, Protocol):
    """Capability handle returned by Driver.connect()."""

    @property
    def is_open(self) -> bool:
        ...

    def purge_expired(self) -> dict[str, int]:
        """R: Reaper: drop expired sessions/cache rows and dead tokens. Returns counts."""
        ...


class Driver(Protocol[HandleT]):
    """Lifecycle of a storage backend."""

    @property
    def is_connected(self) -> bool:
        ...

    def connect(self) -> HandleT:
        """R: Raises AlreadyConnectedError or DriverError."""
        ...

    def disconnect(self) -> None:
        """R: Raises NotConnectedError when already disconnected."""
        ...
