"""Secret hashing and random token helpers built on bcrypt and ``secrets``."""
from __future__ import annotations

import secrets

import bcrypt

OTP_DIGITS = 6
OPAQUE_TOKEN_BYTES = 32
DEFAULT_BCRYPT_ROUNDS = 10


def hash_secret(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt digest of ``plain``.

    Used for both account passwords and OTP codes.
    """
    if not isinstance(plain, str) or not plain:
        raise ValueError("Secret must be a non-empty string")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_secret(plain: str, digest: str | None) -> bool:
    """Return True if ``plain`` matches the bcrypt ``digest``."""
    if not plain or not digest:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        return False


def generate_otp() -> str:
    """Return a uniformly random, zero-padded 6 digit code."""
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def generate_opaque_token() -> str:
    """Return an unguessable hex token (256 bits of entropy)."""
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)


def tokens_match(expected: str | None, presented: str | None) -> bool:
    """Constant-time comparison of a presented opaque token with the stored one."""
    if not expected or not presented:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
