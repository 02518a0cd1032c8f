"""
Cryptographic helpers — password hashing, token hashing and digest comparison.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for one-time codes and
refresh tokens.
"""

from __future__ import annotations

import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a wrong password or a
        malformed hash.
    """
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes and refresh tokens before they are stored so the
    plaintext is never persisted.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def digests_match(expected_hash: str, candidate: str) -> bool:
    """Constant-time check that *candidate* hashes to *expected_hash*."""
    return hmac.compare_digest(expected_hash, hash_token(candidate))


def tokens_match(expected: str, candidate: str) -> bool:
    """Constant-time equality for two opaque tokens."""
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
