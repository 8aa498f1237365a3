from __future__ import annotations

from typing import Optional
from uuid import uuid4

import pytest
from fastapi import Response

from totpkit.api.auth import LoginIn, TokenOut, TotpChallengeOut, login
from totpkit.domain.models import PendingLogin, TotpCredential, User
from totpkit.security.passwords import hash_password


def _user(*, password: str, totp: TotpCredential | None = None) -> User:
    return User(
        id=uuid4(),
        name="alice",
        email_address="alice@example.com",
        password_hash=hash_password(password),
        totp=totp or TotpCredential(),
    )


class _UserRepoFake:
    """Fake UserRepository providing only what the login endpoint reads."""

    def __init__(self, user: User | None) -> None:
        self._user = user

    async def get_by_name(self, name: str):
        if self._user is not None and self._user.name == name:
            return self._user
        return None


class _PendingRepoFake:
    def __init__(self) -> None:
        self.created: list[PendingLogin] = []

    async def create(self, record: PendingLogin) -> PendingLogin:
        self.created.append(record)
        return record

    async def get(self, token_hash: str) -> Optional[PendingLogin]:
        return None

    async def delete(self, token_hash: str) -> None:
        return None


@pytest.mark.asyncio
async def test_login_invalid_user(monkeypatch) -> None:
    """Login should fail with 401 when the user does not exist."""
    from totpkit.api import auth

    monkeypatch.setattr(auth, "UserRepository", lambda db: _UserRepoFake(None))

    payload = LoginIn.model_validate({"username": "alice", "password": "x"})

    with pytest.raises(Exception) as exc:
        await login(payload=payload, response=Response(), db=None)
    assert "Invalid credentials" in str(exc.value)


@pytest.mark.asyncio
async def test_login_invalid_password(monkeypatch) -> None:
    """Login should fail with 401 when the password is incorrect."""
    from totpkit.api import auth

    monkeypatch.setattr(auth, "UserRepository", lambda db: _UserRepoFake(_user(password="correct")))

    payload = LoginIn.model_validate({"username": "alice", "password": "wrong"})

    with pytest.raises(Exception) as exc:
        await login(payload=payload, response=Response(), db=None)
    assert "Invalid credentials" in str(exc.value)


@pytest.mark.asyncio
async def test_login_without_totp_returns_token(monkeypatch) -> None:
    """Users without TOTP receive an access token right away."""
    from totpkit.api import auth

    u = _user(password="secret")
    monkeypatch.setattr(auth, "UserRepository", lambda db: _UserRepoFake(u))

    payload = LoginIn.model_validate({"username": "alice", "password": "secret"})

    res = await login(payload=payload, response=Response(), db=None)
    assert isinstance(res, TokenOut)
    assert res.access_token
    assert res.token_type == "bearer"
    assert str(res.user_id) == str(u.id)
    assert res.role == "USER"


@pytest.mark.asyncio
async def test_login_with_pending_enrollment_returns_token(monkeypatch) -> None:
    """A generated but unverified secret does not turn on the second factor."""
    from totpkit.api import auth

    u = _user(password="secret", totp=TotpCredential(secret="ABCDEFGH"))
    monkeypatch.setattr(auth, "UserRepository", lambda db: _UserRepoFake(u))

    res = await login(payload=LoginIn(username="alice", password="secret"), response=Response(), db=None)
    assert isinstance(res, TokenOut)


@pytest.mark.asyncio
async def test_login_with_totp_issues_pending_token(monkeypatch) -> None:
    """Users with TOTP enabled get a pending token and a cookie instead of a JWT."""
    from totpkit.api import auth
    from totpkit.core.config import settings

    u = _user(password="secret", totp=TotpCredential(secret="ABCDEFGH", enabled=True))
    pending_repo = _PendingRepoFake()
    monkeypatch.setattr(auth, "UserRepository", lambda db: _UserRepoFake(u))
    monkeypatch.setattr(auth, "PendingLoginRepository", lambda db: pending_repo)

    response = Response()
    res = await login(payload=LoginIn(username="alice", password="secret"), response=response, db=None)

    assert isinstance(res, TotpChallengeOut)
    assert res.totp_required
    assert res.pending_token
    assert pending_repo.created[0].user_id == str(u.id)
    assert settings.pending_login_cookie_name in response.headers["set-cookie"]
