from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID

import jwt as jwt_lib

from totpkit.core.config import settings
from totpkit.domain.enums import UserRole


def create_access_token(*, user_id: UUID, role: UserRole, methods: Sequence[str] = ("pwd",)) -> str:
    """Create a signed JWT access token.

    Args:
        user_id: User UUID.
        role: User role.
        methods: Authentication methods completed for this login (`amr` claim),
            e.g. ("pwd",) or ("pwd", "otp").

    Returns:
        str: Encoded JWT.
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.jwt_access_token_exp_minutes)

    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role.value,
        "amr": list(methods),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }

    return jwt_lib.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        jwt.PyJWTError: If token is invalid or expired.
    """
    return jwt_lib.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
