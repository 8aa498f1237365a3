from __future__ import annotations

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from totpkit.domain.models import PendingLogin


class PendingLoginRepository:
    """MongoDB repository for logins awaiting the TOTP second factor.

    Args:
        db: Motor database handle.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["pending_logins"]

    async def ensure_indexes(self) -> None:
        """Create indexes.

        Notes:
            The TTL index only removes stale documents eventually; expiry is
            enforced when a token is resolved.
        """
        await self._col.create_index("token_hash", unique=True)
        await self._col.create_index("expires_at", expireAfterSeconds=0)

    async def create(self, record: PendingLogin) -> PendingLogin:
        # Datetimes stay BSON dates for the TTL index.
        await self._col.insert_one(record.model_dump())
        return record

    async def get(self, token_hash: str) -> Optional[PendingLogin]:
        doc = await self._col.find_one({"token_hash": token_hash})
        return PendingLogin.model_validate(doc) if doc else None

    async def delete(self, token_hash: str) -> None:
        await self._col.delete_one({"token_hash": token_hash})
