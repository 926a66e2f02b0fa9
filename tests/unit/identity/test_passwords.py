"""
Name: Password Hashing Tests

Responsibilities:
  - Argon2id hashes verify, use a fresh salt and fail closed on bad input
"""

import pytest


@pytest.mark.unit
class TestPasswords:
    def test_hash_and_verify(self):
        from warden.identity.passwords import hash_password, verify_password

        hashed = hash_password("secret123")

        assert hashed.startswith("$argon2id$")
        assert verify_password("secret123", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_salt_differs_per_call(self):
        from warden.identity.passwords import hash_password

        assert hash_password("same") != hash_password("same")

    @pytest.mark.parametrize("stored", [None, "", "not-a-hash", "$argon2id$broken"])
    def test_missing_or_malformed_hash_fails_closed(self, stored):
        from warden.identity.passwords import verify_password

        assert verify_password("anything", stored) is False

    def test_current_hash_needs_no_rehash(self):
        from warden.identity.passwords import hash_password, password_needs_rehash

        assert password_needs_rehash(hash_password("pw")) is False
        assert password_needs_rehash("garbage") is True
