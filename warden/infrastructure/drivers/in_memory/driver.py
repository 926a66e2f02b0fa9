"""
============================================================
CRC CARD — infrastructure/drivers/in_memory/driver.py
============================================================
Classes: InMemoryDriver, InMemoryConnection

Responsibilities:
  - Implement the whole driver contract without a database (tests / local
    dev / embedding apps that do not need persistence).
  - Mirror the PostgreSQL driver's observable behavior:
      - lifecycle errors (AlreadyConnected / NotConnected, stale handles)
      - unique email / phone_number among non-deleted users
      - LIKE ANY search, OR-ed fields, ORDER BY id
      - partial updates (IGNORE) with updated_at always bumped
      - compound session match (NULL matches only NULL)
      - one active token per (user, type), replace on re-issue
      - lazy expiry with background cleanup on the CleanupQueue

Collaborators:
  - in_memory.tables.InMemoryTables (data + lock)
  - in_memory.ids.new_id (UUIDv7)
  - identity.passwords / identity.tokens
  - infrastructure.cleanup.CleanupQueue

Constraints / Notes:
  - Thread-safe: every table access is under the tables lock; password
    hashing happens outside it.
  - Time comes from an injectable clock (UTC) so tests can move it.
  - Returned entities are immutable; metadata is deep-copied at the boundary.
============================================================
"""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

from ....crosscutting.exceptions import (
    AlreadyConnectedError,
    CreatedTooFewRecordsError,
    CreatedTooManyRecordsError,
    DeletedTooFewRecordsError,
    DeletedTooManyRecordsError,
    DriverError,
    NotConnectedError,
    TooFewRecordsError,
    UpdatedTooFewRecordsError,
    UpdatedTooManyRecordsError,
    check_single,
)
from ....crosscutting.logger import logger
from ....domain.codecs import MetadataCodec, decode_optional, encode_optional
from ....domain.entities import (
    CacheEntry,
    IPAddress,
    OneTimeToken,
    OneTimeTokenType,
    Session,
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)
from ....identity.passwords import hash_password
from ....identity.tokens import generate_token, hash_token
from ...cleanup import CleanupQueue
from .ids import new_id
from .tables import InMemoryTables, like_any

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_expired(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and expires_at <= now


class InMemoryConnection:
    """R: Connected handle of InMemoryDriver."""

    def __init__(
        self, tables: InMemoryTables, cleanup: CleanupQueue, clock: Clock
    ) -> None:
        self._tables = tables
        self._cleanup = cleanup
        self._clock = clock
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def cleanup(self) -> CleanupQueue:
        return self._cleanup

    def _require_open(self) -> None:
        if not self._open:
            raise NotConnectedError("InMemoryConnection is closed; call connect() again")

    def _close(self) -> None:
        self._open = False
        self._cleanup.shutdown(wait=True)

    # =========================================================
    # Users
    # =========================================================
    @staticmethod
    def _decode(user: User, codec: MetadataCodec) -> User:
        return replace(
            user,
            app_metadata=copy.deepcopy(user.app_metadata),
            user_metadata=decode_optional(codec, copy.deepcopy(user.user_metadata)),
        )

    def _live_users(self) -> list[User]:
        return [u for u in self._tables.users.values() if u.deleted_at is None]

    def _check_unique(
        self, *, email: str | None, phone_number: str | None, exclude: UUID | None
    ) -> None:
        for u in self._live_users():
            if u.id == exclude:
                continue
            if email is not None and u.email == email:
                raise DriverError("unique violation: email already in use")
            if phone_number is not None and u.phone_number == phone_number:
                raise DriverError("unique violation: phone_number already in use")

    def _matching(self, field: UserLookupField, value: str) -> list[User]:
        field = UserLookupField(field)
        if field is UserLookupField.ID:
            try:
                wanted: Any = UUID(value)
            except ValueError as exc:
                raise DriverError(
                    f"invalid input syntax for type uuid: {value!r}", original_error=exc
                ) from exc
            return [u for u in self._live_users() if u.id == wanted]
        if field is UserLookupField.EMAIL:
            return [u for u in self._live_users() if u.email == value]
        return [u for u in self._live_users() if u.phone_number == value]

    def list_users(
        self,
        limit: int,
        offset: int,
        filters: UserSearchFields,
        metadata_codec: MetadataCodec,
    ) -> list[User]:
        self._require_open()
        if limit <= 0:
            return []
        offset = max(offset, 0)
        present = filters.present()

        def predicate(u: User) -> bool:
            if not present:
                return True
            values = {"id": str(u.id), "email": u.email, "phone_number": u.phone_number}
            return any(like_any(values[name], patterns) for name, patterns in present)

        with self._tables.lock:
            matches = sorted((u for u in self._live_users() if predicate(u)), key=lambda u: u.id)
        return [self._decode(u, metadata_codec) for u in matches[offset : offset + limit]]

    def create_user(self, insert: UserInsert, metadata_codec: MetadataCodec) -> User:
        self._require_open()
        password_hash = (
            hash_password(insert.password) if insert.password is not None else None
        )
        encoded = copy.deepcopy(encode_optional(metadata_codec, insert.user_metadata))

        with self._tables.lock:
            self._check_unique(
                email=insert.email, phone_number=insert.phone_number, exclude=None
            )
            now = self._clock()
            user = User(
                id=new_id(),
                created_at=now,
                updated_at=now,
                email=insert.email,
                role=insert.role,
                password_hash=password_hash,
                email_confirmed_at=insert.email_confirmed_at,
                phone_number=insert.phone_number,
                phone_number_confirmed_at=insert.phone_number_confirmed_at,
                app_metadata={},
                user_metadata=encoded,
            )
            self._tables.users[user.id] = user
        return self._decode(user, metadata_codec)

    def update_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        patch: UserUpdate,
        metadata_codec: MetadataCodec,
    ) -> User:
        self._require_open()
        changes: dict[str, Any] = {}
        for name, value in patch.assignments():
            if name == "password":
                changes["password_hash"] = None if value is None else hash_password(value)
            elif name == "user_metadata":
                changes["user_metadata"] = copy.deepcopy(
                    encode_optional(metadata_codec, value)
                )
            elif name == "app_metadata":
                changes["app_metadata"] = copy.deepcopy(dict(value or {}))
            else:
                changes[name] = value

        with self._tables.lock:
            matches = self._matching(match_field, match_value)
            check_single(
                len(matches),
                operation="update_user",
                too_few=UpdatedTooFewRecordsError,
                too_many=UpdatedTooManyRecordsError,
            )
            current = matches[0]
            if "email" in changes or "phone_number" in changes:
                self._check_unique(
                    email=changes.get("email"),
                    phone_number=changes.get("phone_number"),
                    exclude=current.id,
                )
            updated = replace(current, **changes, updated_at=self._clock())
            self._tables.users[updated.id] = updated
        return self._decode(updated, metadata_codec)

    def delete_user(
        self,
        match_field: UserLookupField,
        match_value: str,
        metadata_codec: MetadataCodec,
    ) -> User:
        self._require_open()
        with self._tables.lock:
            matches = self._matching(match_field, match_value)
            check_single(
                len(matches),
                operation="delete_user",
                too_few=DeletedTooFewRecordsError,
                too_many=DeletedTooManyRecordsError,
            )
            now = self._clock()
            deleted = replace(matches[0], deleted_at=now, updated_at=now)
            self._tables.users[deleted.id] = deleted
        return self._decode(deleted, metadata_codec)

    # =========================================================
    # Sessions
    # =========================================================
    def create_session(
        self,
        user_id: UUID,
        ip: IPAddress | None,
        user_agent: str | None,
        ttl_seconds: int | None,
    ) -> Session:
        self._require_open()
        with self._tables.lock:
            user = self._tables.users.get(user_id)
            if user is None or user.deleted_at is not None:
                raise CreatedTooFewRecordsError(
                    "create_session: user not found", operation="create_session", count=0
                )
            now = self._clock()
            session = Session(
                id=new_id(),
                created_at=now,
                user_id=user_id,
                expires_at=None if ttl_seconds is None else now + timedelta(seconds=ttl_seconds),
                ip=ip,
                user_agent=user_agent,
            )
            self._tables.sessions[session.id] = session
        return session

    def get_session(
        self, session_id: UUID, ip: IPAddress | None, user_agent: str | None
    ) -> Session:
        self._require_open()
        with self._tables.lock:
            session = self._tables.sessions.get(session_id)
            if session is None or session.ip != ip or session.user_agent != user_agent:
                raise TooFewRecordsError(
                    "get_session: no matching session", operation="get_session", count=0
                )
            expired = _is_expired(session.expires_at, self._clock())

        if expired:
            self._cleanup.submit(
                "delete_expired_session", self._delete_expired_session, session_id
            )
            raise TooFewRecordsError(
                "get_session: session expired", operation="get_session", count=0
            )
        return session

    def _delete_expired_session(self, session_id: UUID) -> None:
        with self._tables.lock:
            session = self._tables.sessions.get(session_id)
            if session is not None and _is_expired(session.expires_at, self._clock()):
                del self._tables.sessions[session_id]

    def delete_session(self, session_id: UUID) -> None:
        self._require_open()
        with self._tables.lock:
            self._tables.sessions.pop(session_id, None)

    def delete_user_sessions(self, user_id: UUID) -> int:
        self._require_open()
        with self._tables.lock:
            doomed = [s.id for s in self._tables.sessions.values() if s.user_id == user_id]
            for session_id in doomed:
                del self._tables.sessions[session_id]
        return len(doomed)

    # =========================================================
    # One-time tokens
    # =========================================================
    def _active_tokens(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> list[OneTimeToken]:
        token_type = OneTimeTokenType(token_type)
        return [
            t
            for t in self._tables.tokens.values()
            if t.user_id == user_id and t.token_type is token_type and t.deleted_at is None
        ]

    def _unused_match(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> list[OneTimeToken]:
        token_hash = hash_token(token)
        return [
            t
            for t in self._active_tokens(user_id, token_type)
            if t.token_hash == token_hash and t.used_at is None
        ]

    def create_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, ttl_seconds: int
    ) -> str:
        self._require_open()
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")

        token = generate_token()
        with self._tables.lock:
            user = self._tables.users.get(user_id)
            if user is None or user.deleted_at is not None:
                raise CreatedTooFewRecordsError(
                    "create_one_time_token: user not found",
                    operation="create_one_time_token",
                    count=0,
                )
            now = self._clock()
            for previous in self._active_tokens(user_id, token_type):
                self._tables.tokens[previous.id] = replace(previous, deleted_at=now)

            record = OneTimeToken(
                id=new_id(),
                created_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
                token_type=OneTimeTokenType(token_type),
                user_id=user_id,
                token_hash=hash_token(token),
            )
            self._tables.tokens[record.id] = record
        return token

    def validate_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._require_open()
        with self._tables.lock:
            matches = self._unused_match(user_id, token_type, token)
            if not matches:
                raise TooFewRecordsError(
                    "validate_one_time_token: no active token",
                    operation="validate_one_time_token",
                    count=0,
                )
            record = matches[0]
            expired = _is_expired(record.expires_at, self._clock())

        if expired:
            self._cleanup.submit(
                "revoke_expired_one_time_token", self._revoke_expired_token, record.id
            )
            raise TooFewRecordsError(
                "validate_one_time_token: token expired",
                operation="validate_one_time_token",
                count=0,
            )

    def _revoke_expired_token(self, token_id: UUID) -> None:
        with self._tables.lock:
            record = self._tables.tokens.get(token_id)
            now = self._clock()
            if record is not None and record.deleted_at is None and record.expires_at <= now:
                self._tables.tokens[token_id] = replace(record, deleted_at=now)

    def use_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._require_open()
        with self._tables.lock:
            now = self._clock()
            matches = [
                t for t in self._unused_match(user_id, token_type, token) if t.expires_at > now
            ]
            check_single(
                len(matches),
                operation="use_one_time_token",
                too_few=UpdatedTooFewRecordsError,
                too_many=UpdatedTooManyRecordsError,
            )
            self._tables.tokens[matches[0].id] = replace(matches[0], used_at=now)

    def delete_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> None:
        self._require_open()
        with self._tables.lock:
            matches = self._active_tokens(user_id, token_type)
            check_single(
                len(matches),
                operation="delete_one_time_token",
                too_few=DeletedTooFewRecordsError,
                too_many=DeletedTooManyRecordsError,
            )
            self._tables.tokens[matches[0].id] = replace(matches[0], deleted_at=self._clock())

    # =========================================================
    # Cache
    # =========================================================
    def set(
        self, resource_type: str, key: str, value: str, ttl_seconds: int | None
    ) -> None:
        self._require_open()
        with self._tables.lock:
            now = self._clock()
            self._tables.cache[(resource_type, key)] = CacheEntry(
                resource_type=resource_type,
                key=key,
                value=value,
                expires_at=None if ttl_seconds is None else now + timedelta(seconds=ttl_seconds),
            )

    def get(self, resource_type: str, key: str) -> str | None:
        self._require_open()
        with self._tables.lock:
            entry = self._tables.cache.get((resource_type, key))
            if entry is None:
                return None
            expired = _is_expired(entry.expires_at, self._clock())

        if expired:
            self._cleanup.submit(
                "delete_expired_cache_entry", self._delete_expired_entry, resource_type, key
            )
            return None
        return entry.value

    def _delete_expired_entry(self, resource_type: str, key: str) -> None:
        with self._tables.lock:
            entry = self._tables.cache.get((resource_type, key))
            if entry is not None and _is_expired(entry.expires_at, self._clock()):
                del self._tables.cache[(resource_type, key)]

    def delete(self, resource_type: str, key: str) -> None:
        self._require_open()
        with self._tables.lock:
            self._tables.cache.pop((resource_type, key), None)

    # =========================================================
    # Maintenance
    # =========================================================
    def purge_expired(self) -> dict[str, int]:
        self._require_open()
        with self._tables.lock:
            now = self._clock()

            sessions = [
                sid for sid, s in self._tables.sessions.items() if _is_expired(s.expires_at, now)
            ]
            for sid in sessions:
                del self._tables.sessions[sid]

            entries = [
                k for k, e in self._tables.cache.items() if _is_expired(e.expires_at, now)
            ]
            for k in entries:
                del self._tables.cache[k]

            dead = [
                t
                for t in self._tables.tokens.values()
                if t.deleted_at is None and (t.used_at is not None or t.expires_at <= now)
            ]
            for t in dead:
                self._tables.tokens[t.id] = replace(t, deleted_at=now)

        counts = {"sessions": len(sessions), "cache": len(entries), "one_time_tokens": len(dead)}
        logger.info("Purged expired records", extra=counts)
        return counts


class InMemoryDriver:
    """
    R: Disconnected handle for the in-memory backend.

    Data lives on the driver, so it survives disconnect()/connect().
    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        cleanup_workers: int = 1,
        cleanup_max_pending: int = 1000,
    ) -> None:
        self._clock = clock
        self._cleanup_workers = cleanup_workers
        self._cleanup_max_pending = cleanup_max_pending
        self._tables = InMemoryTables()
        self._connection: InMemoryConnection | None = None
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def tables(self) -> InMemoryTables:
        return self._tables

    def connect(self) -> InMemoryConnection:
        with self._lock:
            if self._connection is not None:
                raise AlreadyConnectedError("InMemoryDriver is already connected")
            cleanup = CleanupQueue(
                workers=self._cleanup_workers,
                max_pending=self._cleanup_max_pending,
                name="warden-cleanup-memory",
            )
            self._connection = InMemoryConnection(self._tables, cleanup, self._clock)
            return self._connection

    def disconnect(self) -> None:
        with self._lock:
            connection = self._connection
            if connection is None:
                raise NotConnectedError("InMemoryDriver is not connected")
            self._connection = None
            connection._close()
