"""
Name: AuthService Unit Tests

Responsibilities:
  - Registration, exactly-one lookups, credential check (fail closed)
  - Login flow: session + last_sign_in
  - Cookies round-trip to the session
  - Password reset flow

Notes:
  - Runs on the in-memory driver through the `auth` fixture
"""

from ipaddress import ip_address
from uuid import uuid4

import pytest
from pydantic import BaseModel

from warden.crosscutting.exceptions import (
    DriverError,
    TooFewRecordsError,
    TooManyRecordsError,
)
from warden.domain.entities import UserLookupField, UserSearchFields, UserUpdate


@pytest.mark.unit
class TestUsers:
    def test_register_and_look_up(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", "secret123")

        assert auth.get_user_by_id(user.id).id == user.id
        assert auth.get_user_by_email("lucy@example.dev").id == user.id
        assert user.password_hash and user.password_hash != "secret123"

    def test_lookup_missing(self, auth):
        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_email("nobody@example.dev")

    def test_lookup_does_not_treat_value_as_pattern(self, auth):
        auth.create_user_with_email("aXb@example.dev", None)

        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_email("a_b@example.dev")
        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_email("%@example.dev")

    @pytest.mark.parametrize("raw", ["%", "_", "not-a-uuid", ""])
    def test_id_lookup_requires_a_uuid(self, auth, raw):
        auth.create_user_with_email("lucy@example.dev", None)

        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_id(raw)

    def test_id_prefix_does_not_match(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", None)

        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_id(str(user.id)[:8] + "%")
        assert auth.get_user_by_id(str(user.id).upper()).id == user.id

    def test_get_one_rejects_ambiguous_match(self, connection, settings):
        from unittest.mock import MagicMock

        from warden.application import AuthService

        conn = MagicMock(wraps=connection)
        conn.list_users.return_value = [MagicMock(), MagicMock()]
        service = AuthService(conn, settings=settings)

        with pytest.raises(TooManyRecordsError):
            service.get_user_by_phone_number("+100")
        args = conn.list_users.call_args.args
        assert args[0] == 2

    def test_duplicate_email(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")

        with pytest.raises(DriverError):
            auth.create_user_with_email("lucy@example.dev", "other")

    def test_list_and_search(self, auth):
        auth.create_user_with_email("a@one.dev", None)
        auth.create_user_with_email("b@two.dev", None)

        assert len(auth.list_users()) == 2
        found = auth.list_users(filters=UserSearchFields(email=["%@two.dev"]))
        assert [u.email for u in found] == ["b@two.dev"]

    def test_update_by_email_and_delete(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", None)

        updated = auth.update_user(
            "lucy@example.dev", UserUpdate(role="admin"), match_field=UserLookupField.EMAIL
        )
        deleted = auth.delete_user(user.id)

        assert updated.role == "admin"
        assert deleted.deleted_at is not None
        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_id(user.id)

    def test_typed_metadata(self, connection, settings):
        from warden.application import AuthService
        from warden.domain.codecs import PydanticCodec

        class Profile(BaseModel):
            display_name: str
            newsletter: bool = False

        service = AuthService(
            connection, metadata_codec=PydanticCodec(Profile), settings=settings
        )
        created = service.create_user_with_email(
            "lucy@example.dev", None, Profile(display_name="Lucy")
        )

        fetched = service.get_user_by_email("lucy@example.dev")
        assert created.user_metadata == Profile(display_name="Lucy")
        assert isinstance(fetched.user_metadata, Profile)
        assert fetched.user_metadata.display_name == "Lucy"


@pytest.mark.unit
class TestCredentials:
    def test_valid_password(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", "secret123")

        assert auth.get_user_by_email_and_password("lucy@example.dev", "secret123").id == user.id

    def test_wrong_password_and_unknown_user_look_the_same(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")

        with pytest.raises(TooFewRecordsError) as wrong:
            auth.get_user_by_email_and_password("lucy@example.dev", "nope")
        with pytest.raises(TooFewRecordsError) as unknown:
            auth.get_user_by_email_and_password("ghost@example.dev", "nope")

        assert str(wrong.value) == str(unknown.value)

    def test_user_without_password_cannot_log_in(self, auth):
        auth.create_user_with_email("lucy@example.dev", None)

        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_email_and_password("lucy@example.dev", "")


@pytest.mark.unit
class TestLogin:
    def test_log_in_creates_session_and_records_sign_in(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")
        ip = ip_address("203.0.113.9")

        session, user = auth.log_in_user(
            "lucy@example.dev", "secret123", ip=ip, user_agent="curl/8"
        )

        assert session.user_id == user.id
        assert user.last_sign_in is not None
        assert session.expires_at is not None
        assert auth.get_session(session.id, ip=ip, user_agent="curl/8").id == session.id

    def test_session_ttl_defaults_to_settings(self, auth, clock):
        user = auth.create_user_with_email("lucy@example.dev", None)

        session = auth.create_session(user.id)
        forever = auth.create_session(user.id, ttl_seconds=None)

        assert (session.expires_at - session.created_at).total_seconds() == 3600
        assert forever.expires_at is None

    def test_log_out_everywhere(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")
        first, user = auth.log_in_user("lucy@example.dev", "secret123")
        second, _ = auth.log_in_user("lucy@example.dev", "secret123")

        assert auth.log_out_everywhere(user.id) == 2
        for session in (first, second):
            with pytest.raises(TooFewRecordsError):
                auth.get_session(session.id)

    def test_failed_log_in_opens_no_session(self, auth, memory_driver):
        auth.create_user_with_email("lucy@example.dev", "secret123")

        with pytest.raises(TooFewRecordsError):
            auth.log_in_user("lucy@example.dev", "wrong")
        assert memory_driver.tables.sessions == {}


@pytest.mark.unit
class TestCookies:
    def test_cookie_resolves_session(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", None)
        session = auth.create_session(user.id)

        cookie = auth.sign_cookie(session)

        assert auth.sign_cookie(session.id) == cookie
        assert auth.verify_cookie(cookie) == session.id
        assert auth.get_session_from_cookie(cookie).id == session.id

    def test_tampered_cookie(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", None)
        cookie = auth.sign_cookie(auth.create_session(user.id))
        tampered = cookie[:-1] + ("0" if cookie[-1] != "0" else "1")

        assert auth.verify_cookie(tampered) is None
        with pytest.raises(TooFewRecordsError):
            auth.get_session_from_cookie(tampered)

    def test_signed_non_uuid_is_rejected(self, auth):
        from warden.identity.cookies import sign

        assert auth.verify_cookie(sign("not-a-uuid", "unit-test-cookie-secret")) is None

    def test_cookie_for_deleted_session(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", None)
        session = auth.create_session(user.id)
        cookie = auth.sign_cookie(session)
        auth.delete_session(session.id)

        with pytest.raises(TooFewRecordsError):
            auth.get_session_from_cookie(cookie)

    def test_unknown_session_id(self, auth):
        with pytest.raises(TooFewRecordsError):
            auth.get_session_from_cookie(auth.sign_cookie(uuid4()))


@pytest.mark.unit
class TestPasswordReset:
    def test_full_flow(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")
        _, user = auth.log_in_user("lucy@example.dev", "secret123")

        token = auth.create_password_reset_token(user.id)
        auth.validate_password_reset_token(user.id, token)
        auth.reset_password(user.id, token, "n3w-secret")

        assert auth.get_user_by_email_and_password("lucy@example.dev", "n3w-secret").id == user.id
        with pytest.raises(TooFewRecordsError):
            auth.get_user_by_email_and_password("lucy@example.dev", "secret123")
        assert auth.log_out_everywhere(user.id) == 0

    def test_token_is_single_use(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", "secret123")
        token = auth.create_password_reset_token(user.id)
        auth.reset_password(user.id, token, "first")

        with pytest.raises(TooFewRecordsError):
            auth.reset_password(user.id, token, "second")
        assert auth.get_user_by_email_and_password("lucy@example.dev", "first")

    def test_expired_token(self, auth, clock):
        user = auth.create_user_with_email("lucy@example.dev", "secret123")
        token = auth.create_password_reset_token(user.id)
        clock.advance(601)

        with pytest.raises(TooFewRecordsError):
            auth.validate_password_reset_token(user.id, token)
        with pytest.raises(TooFewRecordsError):
            auth.reset_password(user.id, token, "late")

    def test_keep_sessions(self, auth):
        auth.create_user_with_email("lucy@example.dev", "secret123")
        session, user = auth.log_in_user("lucy@example.dev", "secret123")
        token = auth.create_password_reset_token(user.id)

        auth.reset_password(user.id, token, "n3w", revoke_sessions=False)

        assert auth.get_session(session.id).id == session.id

    def test_hash_failure_keeps_token_usable(self, auth):
        from unittest.mock import patch

        from warden.crosscutting.exceptions import HashError

        user = auth.create_user_with_email("lucy@example.dev", "secret123")
        token = auth.create_password_reset_token(user.id)

        with patch(
            "warden.application.auth.hash_password",
            side_effect=HashError("argon2 failed"),
        ):
            with pytest.raises(HashError):
                auth.reset_password(user.id, token, "n3w")

        auth.validate_password_reset_token(user.id, token)
        auth.reset_password(user.id, token, "n3w")
        assert auth.get_user_by_email_and_password("lucy@example.dev", "n3w").id == user.id

    def test_wrong_token_does_not_spend_the_real_one(self, auth):
        user = auth.create_user_with_email("lucy@example.dev", "secret123")
        token = auth.create_password_reset_token(user.id)

        with pytest.raises(TooFewRecordsError):
            auth.reset_password(user.id, "guess", "n3w")

        auth.reset_password(user.id, token, "n3w")
        assert auth.get_user_by_email_and_password("lucy@example.dev", "n3w").id == user.id
