from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from totpkit.core.config import settings
from totpkit.domain.models import PendingLogin, PendingLoginToken, utc_now

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class PendingLoginStore(Protocol):
    """Key-value store of pending logins keyed by token hash."""

    async def create(self, record: PendingLogin) -> PendingLogin: ...

    async def get(self, token_hash: str) -> Optional[PendingLogin]: ...

    async def delete(self, token_hash: str) -> None: ...


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest under which a token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class PendingLoginService:
    """Issues and resolves tokens for users awaiting their second factor.

    Expiry is checked when a token is resolved. Tokens are not consumed by
    `resolve`; callers clear them once the second factor succeeds.

    Args:
        store: Pending login store.
        ttl: Default token lifetime.
        clock: Returns the current time.
    """

    def __init__(
        self,
        store: PendingLoginStore,
        *,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._ttl = ttl or timedelta(minutes=settings.pending_login_ttl_minutes)
        self._clock = clock

    async def issue(self, user_id: str, ttl: Optional[timedelta] = None) -> PendingLoginToken:
        """Create a token for `user_id` valid for `ttl` (default 10 minutes)."""
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self._clock()
        record = PendingLogin(
            token_hash=hash_token(token),
            user_id=str(user_id),
            created_at=now,
            expires_at=now + (ttl or self._ttl),
        )
        await self._store.create(record)
        logger.info("Pending TOTP login issued", extra={"user_id": record.user_id})
        return PendingLoginToken(token=token, user_id=record.user_id, expires_at=record.expires_at)

    async def resolve(self, token: str | None) -> Optional[str]:
        """Return the user id of a live token, or None.

        Missing and expired tokens are indistinguishable to the caller.
        """
        if not token:
            return None
        token_hash = hash_token(token)
        record = await self._store.get(token_hash)
        if record is None:
            return None
        if record.expires_at <= self._clock():
            await self._store.delete(token_hash)
            logger.info("Pending TOTP login expired", extra={"user_id": record.user_id})
            return None
        return record.user_id

    async def clear(self, token: str | None) -> None:
        if not token:
            return
        await self._store.delete(hash_token(token))
        logger.info("Pending TOTP login cleared")
