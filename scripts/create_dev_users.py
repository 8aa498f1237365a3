"""Create development users: an administrator and a regular user.

The regular user can be created with TOTP already enabled, which prints the
provisioning URI so the account can be added to an authenticator app.
Intended for local development only; existing users with the same id are
overwritten.

Usage:
    python scripts/create_dev_users.py [--mongodb-uri URI] [--with-totp]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from uuid import UUID


def _parse_args() -> argparse.Namespace:
    """Parse CLI args and export MONGODB_URI before settings are imported."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--mongodb-uri", dest="mongodb_uri", help="MongoDB URI to use (overrides env)")
    parser.add_argument("--with-totp", action="store_true", help="Enroll the regular user in TOTP")
    args = parser.parse_args()
    if args.mongodb_uri:
        os.environ["MONGODB_URI"] = args.mongodb_uri
    return args


ARGS = _parse_args()

from totpkit.db.mongo import close_client, init_db  # noqa: E402
from totpkit.domain.enums import UserRole  # noqa: E402
from totpkit.domain.models import TotpCredential, User, utc_now  # noqa: E402
from totpkit.repositories.users import UserRepository  # noqa: E402
from totpkit.security.passwords import hash_password  # noqa: E402
from totpkit.services.credentials import TotpCredentialService  # noqa: E402

logger = logging.getLogger(__name__)


async def _create_users(with_totp: bool) -> None:
    repo = UserRepository(await init_db())

    users: list[User] = [
        User(
            id=UUID("00000000-0000-0000-0000-000000000001"),
            name="admin",
            email_address="admin@example.com",
            role=UserRole.ADMINISTRATOR,
            password_hash=hash_password("adminpass"),
        ),
        User(
            id=UUID("00000000-0000-0000-0000-000000000002"),
            name="alice",
            email_address="alice@example.com",
            role=UserRole.USER,
            password_hash=hash_password("alicepass"),
        ),
    ]

    for u in users:
        await repo._col.update_one(
            {"id": str(u.id)},
            {"$set": u.model_dump(mode="json")},
            upsert=True,
        )
        logger.info("Created/updated user %s (%s)", u.name, u.role.value)

    if with_totp:
        alice = users[1]
        svc = TotpCredentialService(repo)
        setup = await svc.generate_setup(alice)
        credential = TotpCredential(secret=setup.secret_key).enable(utc_now())
        await repo.update_credential(user_id=str(alice.id), expected=None, credential=credential)
        logger.info("TOTP enabled for %s: %s", alice.name, setup.qr_code_uri)

    close_client()


def main() -> None:
    """Run the creation routine in the event loop."""

    logging.basicConfig(level=logging.INFO)
    asyncio.run(_create_users(ARGS.with_totp))


if __name__ == "__main__":
    main()
