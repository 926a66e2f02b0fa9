"""
===============================================================================
CRC CARD — application/auth.py
===============================================================================

Component:
  AuthService (public auth surface)

Responsibilities:
  - Offer the caller-facing operations on top of a connected AuthDriver:
    registration, lookups, credential check, login, sessions, cookies,
    password reset.
  - Turn "list with limit=2" into exactly-one lookups
    (0 -> TooFewRecordsError, >1 -> TooManyRecordsError).
  - Fail closed on credentials: unknown user and wrong password raise the
    same TooFewRecordsError.

Collaborators:
  - domain.drivers.AuthDriver (PostgresConnection / InMemoryConnection)
  - identity.passwords (hash_password, verify_password)
  - identity.cookies.CookieSigner
  - crosscutting.config.Settings (TTLs, cookie secret)

Notes:
  - Lookup values are LIKE-escaped, so "a_b@x.dev" never matches "aXb@x.dev".
  - No secrets (passwords, tokens, cookies) are logged.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import UUID

from ..crosscutting.exceptions import TooFewRecordsError, TooManyRecordsError
from ..crosscutting.logger import logger
from ..domain.codecs import JsonCodec, MetadataCodec
from ..domain.drivers import AuthDriver
from ..domain.entities import (
    IPAddress,
    OneTimeTokenType,
    Session,
    User,
    UserInsert,
    UserLookupField,
    UserSearchFields,
    UserUpdate,
)
from ..identity.cookies import CookieSigner
from ..identity.passwords import hash_password, verify_password

M = TypeVar("M")

# "Use the configured TTL"; None already means "never expires".
_DEFAULT: Any = object()


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value only matches itself."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AuthService(Generic[M]):
    """
    Stable operation surface for users, sessions and one-time tokens.

    Example:
        driver = InMemoryDriver()
        auth = AuthService(driver.connect())
        user = auth.create_user_with_email("lucy@example.dev", "secret123")
        session, user = auth.log_in_user("lucy@example.dev", "secret123")
        cookie = auth.sign_cookie(session)
    """

    def __init__(
        self,
        connection: AuthDriver,
        *,
        metadata_codec: MetadataCodec[M] | None = None,
        settings=None,
        signer: CookieSigner | None = None,
    ) -> None:
        if settings is None:
            from ..crosscutting.config import get_settings

            settings = get_settings()

        self._conn = connection
        self._codec: MetadataCodec[M] = metadata_codec or JsonCodec()
        self._session_ttl_seconds: int | None = settings.session_ttl_seconds
        self._password_reset_ttl_seconds: int = settings.password_reset_ttl_seconds
        self._signer = signer or CookieSigner(settings.cookie_secret)

    # =========================================================
    # Users
    # =========================================================
    def create_user_with_email(
        self, email: str, password: str | None, user_metadata: M | None = None
    ) -> User[M]:
        return self.create_user(
            UserInsert(email=email, password=password, user_metadata=user_metadata)
        )

    def create_user(self, insert: UserInsert[M]) -> User[M]:
        user = self._conn.create_user(insert, self._codec)
        logger.info("User created", extra={"user_id": str(user.id)})
        return user

    def list_users(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        filters: UserSearchFields | None = None,
    ) -> list[User[M]]:
        return self._conn.list_users(
            limit, offset, filters or UserSearchFields(), self._codec
        )

    def _get_one(self, filters: UserSearchFields, lookup: str) -> User[M]:
        users = self._conn.list_users(2, 0, filters, self._codec)
        if not users:
            raise TooFewRecordsError(
                f"User not found by {lookup}", operation="get_user", count=0
            )
        if len(users) > 1:
            raise TooManyRecordsError(
                f"More than one user matches {lookup}", operation="get_user", count=None
            )
        return users[0]

    def get_user_by_id(self, user_id: UUID | str) -> User[M]:
        try:
            parsed = user_id if isinstance(user_id, UUID) else UUID(str(user_id))
        except ValueError:
            raise TooFewRecordsError(
                "User not found by id", operation="get_user", count=0
            ) from None
        return self._get_one(UserSearchFields(id=[str(parsed)]), "id")

    def get_user_by_email(self, email: str) -> User[M]:
        return self._get_one(UserSearchFields(email=[escape_like(email)]), "email")

    def get_user_by_phone_number(self, phone_number: str) -> User[M]:
        return self._get_one(
            UserSearchFields(phone_number=[escape_like(phone_number)]), "phone_number"
        )

    def get_user_by_email_and_password(self, email: str, password: str) -> User[M]:
        """R: Same error for "no such user" and "wrong password"."""
        try:
            user = self.get_user_by_email(email)
        except TooFewRecordsError:
            raise TooFewRecordsError(
                "Invalid credentials", operation="get_user_by_email_and_password", count=0
            ) from None

        if not verify_password(password, user.password_hash):
            raise TooFewRecordsError(
                "Invalid credentials", operation="get_user_by_email_and_password", count=0
            )
        return user

    def update_user(
        self,
        match_value: UUID | str,
        patch: UserUpdate[M],
        *,
        match_field: UserLookupField = UserLookupField.ID,
    ) -> User[M]:
        return self._conn.update_user(match_field, str(match_value), patch, self._codec)

    def delete_user(
        self,
        match_value: UUID | str,
        *,
        match_field: UserLookupField = UserLookupField.ID,
    ) -> User[M]:
        user = self._conn.delete_user(match_field, str(match_value), self._codec)
        logger.info("User deleted", extra={"user_id": str(user.id)})
        return user

    # =========================================================
    # Login / sessions
    # =========================================================
    def log_in_user(
        self,
        email: str,
        password: str,
        *,
        ip: IPAddress | None = None,
        user_agent: str | None = None,
        ttl_seconds: int | None = _DEFAULT,
    ) -> tuple[Session, User[M]]:
        """Check credentials, open a session and record last_sign_in."""
        user = self.get_user_by_email_and_password(email, password)
        session = self.create_session(
            user.id, ip=ip, user_agent=user_agent, ttl_seconds=ttl_seconds
        )
        user = self._conn.update_user(
            UserLookupField.ID,
            str(user.id),
            UserUpdate(last_sign_in=datetime.now(timezone.utc)),
            self._codec,
        )
        logger.info(
            "User logged in",
            extra={"user_id": str(user.id), "session_id": str(session.id)},
        )
        return session, user

    def create_session(
        self,
        user_id: UUID,
        *,
        ip: IPAddress | None = None,
        user_agent: str | None = None,
        ttl_seconds: int | None = _DEFAULT,
    ) -> Session:
        if ttl_seconds is _DEFAULT:
            ttl_seconds = self._session_ttl_seconds
        return self._conn.create_session(user_id, ip, user_agent, ttl_seconds)

    def get_session(
        self,
        session_id: UUID,
        *,
        ip: IPAddress | None = None,
        user_agent: str | None = None,
    ) -> Session:
        return self._conn.get_session(session_id, ip, user_agent)

    def delete_session(self, session_id: UUID) -> None:
        self._conn.delete_session(session_id)

    def log_out_everywhere(self, user_id: UUID) -> int:
        removed = self._conn.delete_user_sessions(user_id)
        logger.info(
            "User logged out everywhere",
            extra={"user_id": str(user_id), "sessions": removed},
        )
        return removed

    # =========================================================
    # Cookies
    # =========================================================
    def sign_cookie(self, session: Session | UUID) -> str:
        session_id = session.id if isinstance(session, Session) else session
        return self._signer.sign(str(session_id))

    def verify_cookie(self, cookie: str) -> UUID | None:
        """Session id carried by a valid cookie, else None."""
        session_id = self._signer.verify(cookie)
        if session_id is None:
            return None
        try:
            return UUID(session_id)
        except ValueError:
            return None

    def get_session_from_cookie(
        self,
        cookie: str,
        *,
        ip: IPAddress | None = None,
        user_agent: str | None = None,
    ) -> Session:
        session_id = self.verify_cookie(cookie)
        if session_id is None:
            raise TooFewRecordsError(
                "Invalid session cookie", operation="get_session_from_cookie", count=0
            )
        return self._conn.get_session(session_id, ip, user_agent)

    # =========================================================
    # One-time tokens
    # =========================================================
    def create_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, ttl_seconds: int
    ) -> str:
        return self._conn.create_one_time_token(user_id, token_type, ttl_seconds)

    def validate_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._conn.validate_one_time_token(user_id, token_type, token)

    def use_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType, token: str
    ) -> None:
        self._conn.use_one_time_token(user_id, token_type, token)

    def delete_one_time_token(
        self, user_id: UUID, token_type: OneTimeTokenType
    ) -> None:
        self._conn.delete_one_time_token(user_id, token_type)

    # --- Password reset -------------------------------------------------------
    def create_password_reset_token(self, user_id: UUID) -> str:
        token = self._conn.create_one_time_token(
            user_id, OneTimeTokenType.PASSWORD_RESET, self._password_reset_ttl_seconds
        )
        logger.info("Password reset token issued", extra={"user_id": str(user_id)})
        return token

    def validate_password_reset_token(self, user_id: UUID, token: str) -> None:
        self._conn.validate_one_time_token(
            user_id, OneTimeTokenType.PASSWORD_RESET, token
        )

    def reset_password(
        self,
        user_id: UUID,
        token: str,
        new_password: str,
        *,
        revoke_sessions: bool = True,
    ) -> User[M]:
        """
        Check the token, hash the new password, consume the token, store the hash.

        An invalid token or a hashing failure leaves the token usable. A
        storage failure after the token is consumed needs a new token.
        """
        self._conn.validate_one_time_token(
            user_id, OneTimeTokenType.PASSWORD_RESET, token
        )
        password_hash = hash_password(new_password)
        self._conn.use_one_time_token(user_id, OneTimeTokenType.PASSWORD_RESET, token)
        user = self._conn.update_user(
            UserLookupField.ID,
            str(user_id),
            UserUpdate(password_hash=password_hash),
            self._codec,
        )
        if revoke_sessions:
            self._conn.delete_user_sessions(user_id)
        logger.info("Password reset", extra={"user_id": str(user_id)})
        return user
