"""Credential hashing and random token generation.

Passwords are hashed in two stages: an HMAC-SHA256 of the password keyed by the
salt, then scrypt (64-byte output) over that hex digest with the same salt. The
parameters match the store's existing hashes, so they must not change without a
migration.
"""

import base64
import hashlib
import hmac
import secrets
import string
import uuid
from dataclasses import dataclass

SALT_BYTES = 128
REFRESH_TOKEN_BYTES = 128
XSRF_TOKEN_BYTES = 64
URL_TOKEN_BYTES = 32

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64

SYMBOLS = '~!@#$%^&*()_+{}":?><;.,'

_random = secrets.SystemRandom()


@dataclass(frozen=True)
class PasswordHash:
    """A computed password hash and the salt it was derived with."""

    hash: str
    salt: str


def create_salt() -> str:
    return base64.b64encode(secrets.token_bytes(SALT_BYTES)).decode("ascii")


def create_refresh_token() -> str:
    return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


def create_xsrf_token() -> str:
    return secrets.token_hex(XSRF_TOKEN_BYTES)


def create_url_token() -> str:
    return secrets.token_hex(URL_TOKEN_BYTES)


def create_uuid() -> str:
    return str(uuid.uuid4())


def hash_password(password: str, salt: str | None = None) -> PasswordHash:
    """Hash a password, generating a salt when none is given."""
    salt = salt or create_salt()
    key = salt.encode("utf-8")
    digest = hmac.new(key, password.encode("utf-8"), hashlib.sha256).hexdigest()
    derived = hashlib.scrypt(
        digest.encode("utf-8"),
        salt=key,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )
    return PasswordHash(hash=derived.hex(), salt=salt)


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    """Recompute the hash for `password` and compare it in constant time."""
    if not salt or not expected_hash:
        return False
    computed = hash_password(password, salt).hash
    return hmac.compare_digest(computed.encode("ascii"), expected_hash.encode("ascii"))


def create_password(
    length: int = 8,
    lower: bool = True,
    upper: bool = True,
    number: bool = True,
    symbol: bool = False,
) -> str:
    """Generate a random password mixing the enabled character classes.

    Every enabled class contributes one character per position before the result is
    cut to `length` and shuffled. Meant for seeded or admin-generated accounts.
    """
    classes = [
        alphabet
        for enabled, alphabet in (
            (lower, string.ascii_lowercase),
            (upper, string.ascii_uppercase),
            (number, string.digits),
            (symbol, SYMBOLS),
        )
        if enabled
    ]
    if not classes or length <= 0:
        return ""

    chars = [secrets.choice(alphabet) for _ in range(length) for alphabet in classes][:length]
    _random.shuffle(chars)
    return "".join(chars)
