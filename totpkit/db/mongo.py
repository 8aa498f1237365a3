"""MongoDB access shared by the API and the dev scripts.

One client is kept per process. Users (with their embedded TOTP credential)
and pending second-factor logins live in the database named by
`settings.mongodb_db`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from totpkit.core.config import settings
from totpkit.repositories.pending_logins import PendingLoginRepository
from totpkit.repositories.users import UserRepository

logger = logging.getLogger(__name__)


_client: Optional[AsyncIOMotorClient[Any]] = None
_db: Optional[AsyncIOMotorDatabase[Any]] = None


def get_client() -> AsyncIOMotorClient[Any]:
    """Return the process-wide MongoDB client, creating it on first use.

    Datetimes are decoded timezone-aware (UTC) so stored expiry and
    verification timestamps compare with `utc_now()`. Server selection is
    bounded by `settings.mongodb_timeout_ms`, so an unreachable server fails
    health checks and logins quickly instead of hanging a request.

    Returns:
        AsyncIOMotorClient: MongoDB client.
    """
    global _client
    if _client is None:
        logger.info(
            "Connecting to MongoDB",
            extra={"mongodb_uri": settings.mongodb_uri, "timeout_ms": settings.mongodb_timeout_ms},
        )
        _client = AsyncIOMotorClient(
            settings.mongodb_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        )
    return _client


def get_db() -> AsyncIOMotorDatabase[Any]:
    """Return the database holding users and pending logins.

    Returns:
        AsyncIOMotorDatabase: Database for current configuration.
    """
    global _db
    if _db is None:
        _db = get_client()[settings.mongodb_db]
    return _db


async def ping_db() -> bool:
    """Ping MongoDB to verify connectivity.

    Returns:
        bool: True if ping succeeded.

    Raises:
        Any: Propagates underlying Motor errors (callers decide whether that is fatal).
    """
    res: dict[str, Any] = await get_db().command("ping")
    ok: bool = bool(res.get("ok"))
    logger.info("MongoDB ping", extra={"ok": ok, "db": settings.mongodb_db})
    return ok


async def init_db() -> AsyncIOMotorDatabase[Any]:
    """Check connectivity and create the indexes both repositories rely on.

    The unique user indexes back name/email lookups and the compare-and-swap
    credential update; the pending-login TTL index lets MongoDB drop expired
    second-factor tokens on its own.

    Returns:
        AsyncIOMotorDatabase: The initialized database.

    Raises:
        RuntimeError: If the server answers the ping without `ok`.
    """
    if not await ping_db():
        raise RuntimeError("MongoDB ping failed")
    db = get_db()
    await UserRepository(db).ensure_indexes()
    await PendingLoginRepository(db).ensure_indexes()
    logger.info("MongoDB indexes ensured", extra={"db": settings.mongodb_db})
    return db


def close_client() -> None:
    """Close the client and forget the cached handles so the next call reconnects."""
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None
