"""
Name: Cookie Signer Tests

Responsibilities:
  - Round-trip sign/verify
  - Reject any single-bit mutation, a foreign key and malformed input
"""

from uuid import uuid4

import pytest


@pytest.mark.unit
class TestSignVerify:
    def test_round_trip(self):
        from warden.identity.cookies import sign, verify

        session_id = str(uuid4())
        assert verify(sign(session_id, "key-1"), "key-1") == session_id

    def test_wire_format(self):
        from warden.identity.cookies import sign

        token = sign("abc", "key")
        session_id, digest = token.split("|")

        assert session_id == "abc"
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_every_single_bit_mutation_fails(self):
        from warden.identity.cookies import sign, verify

        session_id = str(uuid4())
        token = sign(session_id, "key-1")

        for i, ch in enumerate(token):
            for bit in range(7):
                mutated = token[:i] + chr(ord(ch) ^ (1 << bit)) + token[i + 1 :]
                assert verify(mutated, "key-1") is None, (i, bit)

    def test_other_key_fails(self):
        from warden.identity.cookies import sign, verify

        token = sign(str(uuid4()), "key-1")
        assert verify(token, "key-2") is None

    @pytest.mark.parametrize(
        "token",
        ["", "no-separator", "a|b|c", "|deadbeef", "abc|", "|"],
    )
    def test_malformed_returns_none(self, token):
        from warden.identity.cookies import verify

        assert verify(token, "key") is None

    @pytest.mark.parametrize(
        "token",
        ["abc|\udcff", "\udcff|deadbeef", "abc|déadbeef", "séssion|deadbeef"],
    )
    def test_non_ascii_returns_none(self, token):
        from warden.identity.cookies import verify

        assert verify(token, "key") is None

    def test_session_id_with_separator_rejected(self):
        from warden.identity.cookies import sign

        with pytest.raises(ValueError):
            sign("a|b", "key")


@pytest.mark.unit
class TestCookieSigner:
    def test_bound_secret(self):
        from warden.identity.cookies import CookieSigner

        signer = CookieSigner("secret-a")
        token = signer.sign("sid")

        assert signer.verify(token) == "sid"
        assert CookieSigner("secret-b").verify(token) is None

    def test_empty_secret_rejected(self):
        from warden.identity.cookies import CookieSigner

        with pytest.raises(ValueError):
            CookieSigner("")
