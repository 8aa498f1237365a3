from __future__ import annotations

from datetime import timedelta
from typing import Optional
from uuid import UUID, uuid4

import pyotp
import pytest
from fastapi.testclient import TestClient

from totpkit.domain.models import PendingLogin, TotpCredential, User, utc_now
from totpkit.main import app
from totpkit.security.jwt import decode_token
from totpkit.security.passwords import hash_password
from totpkit.services import base32

SECRET = base32.encode(bytes(range(20)))


class _UserRepoFake:
    def __init__(self, user: User) -> None:
        self.user = user

    async def get_by_name(self, name: str):
        return self.user if name == self.user.name else None

    async def get_by_id(self, user_id: UUID):
        return self.user if user_id == self.user.id else None


class _PendingRepoFake:
    def __init__(self) -> None:
        self.records: dict[str, PendingLogin] = {}

    async def create(self, record: PendingLogin) -> PendingLogin:
        self.records[record.token_hash] = record
        return record

    async def get(self, token_hash: str) -> Optional[PendingLogin]:
        return self.records.get(token_hash)

    async def delete(self, token_hash: str) -> None:
        self.records.pop(token_hash, None)


@pytest.fixture
def alice() -> User:
    return User(
        id=uuid4(),
        name="alice",
        email_address="alice@example.com",
        password_hash=hash_password("secret"),
        totp=TotpCredential(secret=SECRET, enabled=True, verified_at=utc_now()),
    )


@pytest.fixture
def pending_repo() -> _PendingRepoFake:
    return _PendingRepoFake()


@pytest.fixture
def client(monkeypatch, alice: User, pending_repo: _PendingRepoFake):
    from totpkit.api import auth, deps

    users = _UserRepoFake(alice)
    monkeypatch.setattr(auth, "UserRepository", lambda db: users)
    monkeypatch.setattr(auth, "PendingLoginRepository", lambda db: pending_repo)

    async def _no_db():
        yield None

    app.dependency_overrides[deps.db_dep] = _no_db
    yield TestClient(app)
    app.dependency_overrides = {}


def _password_step(client: TestClient) -> str:
    resp = client.post("/auth/login", json={"username": "alice", "password": "secret"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["totp_required"] is True
    return data["pending_token"]


def test_totp_login_happy_path(client: TestClient, pending_repo: _PendingRepoFake) -> None:
    token = _password_step(client)

    otp = pyotp.TOTP(SECRET, interval=30).now()
    resp = client.post("/auth/totp/login", json={"code": otp, "pending_token": token})

    assert resp.status_code == 200
    data = resp.json()
    assert data["role"] == "USER"
    assert decode_token(data["access_token"])["amr"] == ["pwd", "otp"]
    assert pending_repo.records == {}


def test_totp_login_uses_pending_cookie(client: TestClient) -> None:
    _password_step(client)

    otp = pyotp.TOTP(SECRET, interval=30).now()
    resp = client.post("/auth/totp/login", json={"code": otp})

    assert resp.status_code == 200
    assert "access_token" in resp.json()


def test_totp_login_token_cannot_be_reused_after_success(client: TestClient) -> None:
    token = _password_step(client)
    otp = pyotp.TOTP(SECRET, interval=30).now()

    assert client.post("/auth/totp/login", json={"code": otp, "pending_token": token}).status_code == 200
    client.cookies.clear()
    resp = client.post("/auth/totp/login", json={"code": otp, "pending_token": token})
    assert resp.status_code == 401


def test_totp_login_invalid_code(client: TestClient, pending_repo: _PendingRepoFake) -> None:
    token = _password_step(client)

    resp = client.post("/auth/totp/login", json={"code": "abc", "pending_token": token})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"
    assert len(pending_repo.records) == 1


def test_totp_login_unknown_token(client: TestClient) -> None:
    otp = pyotp.TOTP(SECRET, interval=30).now()
    resp = client.post("/auth/totp/login", json={"code": otp, "pending_token": "nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"


def test_totp_login_expired_token(client: TestClient, pending_repo: _PendingRepoFake) -> None:
    token = _password_step(client)
    for key, record in list(pending_repo.records.items()):
        pending_repo.records[key] = record.model_copy(update={"expires_at": utc_now() - timedelta(seconds=1)})

    otp = pyotp.TOTP(SECRET, interval=30).now()
    resp = client.post("/auth/totp/login", json={"code": otp, "pending_token": token})
    assert resp.status_code == 401


def test_totp_login_requires_enabled(client: TestClient, alice: User, pending_repo: _PendingRepoFake) -> None:
    token = _password_step(client)
    alice.totp = TotpCredential(secret=SECRET)

    otp = pyotp.TOTP(SECRET, interval=30).now()
    resp = client.post("/auth/totp/login", json={"code": otp, "pending_token": token})
    assert resp.status_code == 401


def test_totp_cancel_clears_pending_login(client: TestClient, pending_repo: _PendingRepoFake) -> None:
    token = _password_step(client)

    resp = client.post("/auth/totp/cancel", json={"pending_token": token})

    assert resp.status_code == 200
    assert pending_repo.records == {}
