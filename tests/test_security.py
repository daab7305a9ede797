"""Tests for password hashing and token generation."""

import base64
import re
import string

from app.core import security


class TestPasswordHash:
    """Tests for hash_password / verify_password."""

    def test_hash_is_deterministic_for_same_salt(self):
        salt = security.create_salt()
        first = security.hash_password("pass1234", salt)
        second = security.hash_password("pass1234", salt)
        assert first == second
        assert first.salt == salt

    def test_hash_is_64_bytes_hex(self):
        hashed = security.hash_password("pass1234")
        assert re.fullmatch(r"[0-9a-f]{128}", hashed.hash)

    def test_generates_salt_when_missing(self):
        first = security.hash_password("pass1234")
        second = security.hash_password("pass1234")
        assert first.salt != second.salt
        assert first.hash != second.hash

    def test_different_password_different_hash(self):
        salt = security.create_salt()
        assert security.hash_password("pass1234", salt).hash != security.hash_password("pass1235", salt).hash

    def test_verify_accepts_matching_password(self):
        hashed = security.hash_password("pass1234")
        assert security.verify_password("pass1234", hashed.salt, hashed.hash)

    def test_verify_rejects_wrong_password(self):
        hashed = security.hash_password("pass1234")
        assert not security.verify_password("wrong", hashed.salt, hashed.hash)

    def test_verify_rejects_missing_hash(self):
        assert not security.verify_password("pass1234", "", "")


class TestRandomValues:
    """Tests for salts, tokens and ids."""

    def test_salt_is_128_random_bytes(self):
        assert len(base64.b64decode(security.create_salt())) == 128

    def test_refresh_token_is_128_random_bytes(self):
        assert len(base64.b64decode(security.create_refresh_token())) == 128

    def test_xsrf_token_is_64_bytes_hex(self):
        assert re.fullmatch(r"[0-9a-f]{128}", security.create_xsrf_token())

    def test_url_token_is_32_bytes_hex(self):
        assert re.fullmatch(r"[0-9a-f]{64}", security.create_url_token())

    def test_uuid_is_v4(self):
        assert re.fullmatch(r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}", security.create_uuid())

    def test_tokens_are_unique(self):
        assert len({security.create_xsrf_token() for _ in range(20)}) == 20


class TestCreatePassword:
    """Tests for generated passwords."""

    def test_default_length_and_classes(self):
        password = security.create_password()
        assert len(password) == 8
        assert set(password) <= set(string.ascii_letters + string.digits)

    def test_each_class_present_when_long_enough(self):
        password = security.create_password(length=12, symbol=True)
        assert any(c in string.ascii_lowercase for c in password)
        assert any(c in string.ascii_uppercase for c in password)
        assert any(c in string.digits for c in password)
        assert any(c in security.SYMBOLS for c in password)

    def test_single_class(self):
        password = security.create_password(length=10, upper=False, number=False)
        assert len(password) == 10
        assert password.islower()

    def test_no_class_gives_empty_password(self):
        assert security.create_password(lower=False, upper=False, number=False, symbol=False) == ""
