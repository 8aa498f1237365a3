from __future__ import annotations

import os
from datetime import timedelta
from uuid import uuid4

import pytest
from motor.motor_asyncio import AsyncIOMotorClient

from totpkit.domain.models import PendingLogin, TotpCredential, User, utc_now
from totpkit.repositories.pending_logins import PendingLoginRepository
from totpkit.repositories.users import UserRepository

pytestmark = pytest.mark.skipif(
    "MONGODB_URI" not in os.environ,
    reason="integration test, set MONGODB_URI to run against a real MongoDB",
)


def _db(client: AsyncIOMotorClient):
    return client[os.getenv("MONGODB_DB", "totpkit_test")]


@pytest.mark.asyncio
async def test_user_repository_update_credential() -> None:
    """UserRepository should replace the whole credential in one update (integration).

    Environment:
        - MONGODB_URI
        - MONGODB_DB (default: totpkit_test)
    """
    client = AsyncIOMotorClient(os.environ["MONGODB_URI"], tz_aware=True)
    db = _db(client)
    repo = UserRepository(db)

    user = User(id=uuid4(), name=f"u{uuid4().hex[:12]}", email_address=f"{uuid4().hex[:8]}@example.com", password_hash="x")
    await repo.create(user)

    enabled = TotpCredential(secret="ABCDEFGH", enabled=True, verified_at=utc_now().replace(microsecond=0))
    assert await repo.update_credential(user_id=str(user.id), expected=TotpCredential(), credential=enabled) is True

    loaded = await repo.get_by_id(user.id)
    assert loaded is not None
    assert loaded.totp == enabled

    # Stale writes computed from an older credential do not apply.
    replacement = TotpCredential(secret="ZYXWVUTS")
    assert await repo.update_credential(user_id=str(user.id), expected=TotpCredential(), credential=replacement) is False
    stale_pending = TotpCredential(secret="ABCDEFGH")
    assert await repo.update_credential(user_id=str(user.id), expected=stale_pending, credential=replacement) is False
    loaded = await repo.get_by_id(user.id)
    assert loaded is not None
    assert loaded.totp == enabled

    assert await repo.update_credential(user_id=str(user.id), expected=None, credential=TotpCredential()) is True
    loaded = await repo.get_by_id(user.id)
    assert loaded is not None
    assert loaded.totp == TotpCredential()

    assert await repo.update_credential(user_id=str(uuid4()), expected=None, credential=TotpCredential()) is False

    await db["users"].delete_many({"id": str(user.id)})
    client.close()


@pytest.mark.asyncio
async def test_pending_login_repository_round_trip() -> None:
    client = AsyncIOMotorClient(os.environ["MONGODB_URI"], tz_aware=True)
    db = _db(client)
    repo = PendingLoginRepository(db)
    await repo.ensure_indexes()

    now = utc_now().replace(microsecond=0)
    record = PendingLogin(token_hash=uuid4().hex, user_id="user-1", created_at=now, expires_at=now + timedelta(minutes=10))
    await repo.create(record)

    loaded = await repo.get(record.token_hash)
    assert loaded == record

    await repo.delete(record.token_hash)
    assert await repo.get(record.token_hash) is None
    client.close()
