from __future__ import annotations

from typing import Optional
from uuid import UUID

from motor.motor_asyncio import AsyncIOMotorDatabase

from totpkit.domain.models import TotpCredential, User


class UserRepository:
    """MongoDB repository for users.

    This class is part of the data access layer and must be the only place where
    direct database queries for the `users` collection are performed. It is the
    credential store of `TotpCredentialService`.

    Args:
        db: Motor database handle.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """Initialize the repository.

        Args:
            db: Motor database handle.
        """
        self._col = db["users"]

    async def ensure_indexes(self) -> None:
        """Create MongoDB indexes required by the application.

        Notes:
            Safe to call multiple times.
        """
        await self._col.create_index("id", unique=True)
        await self._col.create_index("email_address", unique=True)
        await self._col.create_index("name", unique=True)

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Fetch a user by id.

        Args:
            user_id: User UUID.

        Returns:
            User | None: Loaded user or None if not found.
        """
        doc = await self._col.find_one({"id": str(user_id)})
        return User.model_validate(doc) if doc else None

    async def get_by_name(self, name: str) -> Optional[User]:
        """Fetch a user by username.

        Args:
            name: Alphanumeric username.

        Returns:
            User | None: Loaded user or None if not found.
        """
        doc = await self._col.find_one({"name": name})
        return User.model_validate(doc) if doc else None

    async def create(self, user: User) -> User:
        """Persist a new user.

        Args:
            user: User model.

        Returns:
            User: The same user instance.

        Raises:
            Any: Propagates underlying Motor/Mongo exceptions (e.g., duplicate key).
        """
        await self._col.insert_one(user.model_dump(mode="json"))
        return user

    async def update_password_hash(self, *, user_id: UUID, password_hash: str) -> None:
        """Update stored password hash for a user.

        Args:
            user_id: User UUID.
            password_hash: New password hash.
        """
        await self._col.update_one(
            {"id": str(user_id)},
            {"$set": {"password_hash": password_hash}},
        )

    async def update_credential(
        self,
        *,
        user_id: str,
        expected: Optional[TotpCredential],
        credential: TotpCredential,
    ) -> bool:
        """Replace the TOTP credential of a user in a single atomic update.

        With `expected` set, the update is a compare-and-swap: it only applies
        while the stored secret and enabled flag still equal `expected`.

        Args:
            user_id: User id as string.
            expected: Credential the change was computed from, or None to write unconditionally.
            credential: New credential value.

        Returns:
            bool: True if a user document matched.

        Raises:
            Any: Propagates underlying Motor/Mongo exceptions.
        """
        query: dict[str, object] = {"id": str(user_id)}
        if expected is not None:
            # A null filter also matches a missing field.
            query["totp.secret"] = expected.secret
            query["totp.enabled"] = True if expected.enabled else {"$ne": True}
        res = await self._col.update_one(
            query,
            {
                "$set": {
                    "totp.secret": credential.secret,
                    "totp.enabled": credential.enabled,
                    "totp.verified_at": credential.verified_at,
                }
            },
        )
        return res.matched_count == 1
