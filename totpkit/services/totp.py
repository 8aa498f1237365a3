from __future__ import annotations

import hashlib
from datetime import datetime, timezone

import pyotp

from totpkit.services import base32

PERIOD_SECONDS = 30
DIGITS = 6
DEFAULT_WINDOW = 1

_DIGIT_CHARS = frozenset("0123456789")


def _utc(now: datetime) -> datetime:
    # pyotp reads naive datetimes as local time.
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def current_step(now: datetime) -> int:
    """Return the 30-second time step containing `now`.

    Args:
        now: Point in time. Naive datetimes are taken as UTC.

    Returns:
        int: floor(unix seconds / 30).
    """
    return int(_utc(now).timestamp()) // PERIOD_SECONDS


def compute_code(secret: bytes, step: int) -> str:
    """Compute the 6-digit code for a secret at a time step.

    Args:
        secret: Raw shared secret.
        step: Time step (counter).

    Returns:
        str: Zero-padded 6-digit code.
    """
    return pyotp.HOTP(base32.encode(secret), digits=DIGITS, digest=hashlib.sha1).at(step)


def is_well_formed(code: str | None) -> bool:
    """Check that a code is exactly six ASCII digits."""
    return code is not None and len(code) == DIGITS and all(c in _DIGIT_CHARS for c in code)


def verify(secret: bytes, code: str | None, now: datetime, window: int = DEFAULT_WINDOW) -> bool:
    """Verify a code against the steps around `now`.

    Malformed codes are rejected before any HMAC is computed.

    Args:
        secret: Raw shared secret.
        code: Code as entered by the user.
        now: Point in time of the check, at least `window` steps after the epoch.
        window: Steps accepted on each side of the current step.

    Returns:
        bool: True if the code matches any step in the window.

    Raises:
        ValueError: If `window` is negative.
    """
    if window < 0:
        raise ValueError("window must be non-negative")
    if not is_well_formed(code):
        return False

    otp = pyotp.TOTP(base32.encode(secret), digits=DIGITS, digest=hashlib.sha1, interval=PERIOD_SECONDS)
    return bool(otp.verify(code, for_time=_utc(now), valid_window=window))
