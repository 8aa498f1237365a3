"""Password hashing for the first login factor (Argon2 via passlib)."""

from __future__ import annotations

import hashlib
import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

_pwd = CryptContext(schemes=["argon2"], deprecated="auto")

# Longer inputs are pre-hashed so the KDF always sees a bounded input.
_MAX_RAW_BYTES = 1024


def _prepare(password: str) -> str:
    """Bound the input handed to Argon2.

    Passwords up to `_MAX_RAW_BYTES` of UTF-8 pass through unchanged. Longer
    ones are replaced by their SHA-256 hex digest, so a multi-megabyte login
    body costs one fast hash instead of a full KDF run over the whole input.
    Hashing and verifying go through the same step, so stored hashes stay
    comparable.

    Args:
        password: Plaintext password as received.

    Returns:
        str: The password itself, or its 64-character SHA-256 hex digest.
    """
    raw = password.encode("utf-8")
    if len(raw) <= _MAX_RAW_BYTES:
        return password
    return hashlib.sha256(raw).hexdigest()


def hash_password(password: str) -> str:
    """Hash a plaintext password.

    Args:
        password: Plaintext password.

    Returns:
        str: Argon2 hash string.
    """
    return _pwd.hash(_prepare(password))


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a stored hash.

    Malformed or unknown hashes verify as False.
    """
    try:
        return bool(_pwd.verify(_prepare(password), password_hash))
    except (ValueError, TypeError) as ex:
        logger.warning("Password verify failed", exc_info=ex)
        return False


def needs_rehash(password_hash: str) -> bool:
    """Tell whether a stored hash predates the current Argon2 parameters.

    Checked after a successful first-factor login, which is the only moment
    the plaintext is available to re-hash. Unparseable hashes report False.
    """
    try:
        return bool(_pwd.needs_update(password_hash))
    except (ValueError, TypeError):
        return False
