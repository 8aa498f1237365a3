from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from totpkit.api.deps import Db
from totpkit.core.config import settings
from totpkit.domain.models import PendingLoginToken, User
from totpkit.repositories.pending_logins import PendingLoginRepository
from totpkit.repositories.users import UserRepository
from totpkit.security.jwt import create_access_token
from totpkit.security.passwords import hash_password, needs_rehash, verify_password
from totpkit.services.credentials import TotpCredentialService
from totpkit.services.pending_login import PendingLoginService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    """Request body for password-based login (first factor).

    Attributes:
        username: Alphanumeric username.
        password: Plaintext password.
    """

    username: str = Field(min_length=1, pattern=r"^[A-Za-z0-9]+$")
    password: str = Field(min_length=1, description="Plaintext password")


class TokenOut(BaseModel):
    """JWT token response returned after successful authentication."""

    access_token: str
    token_type: str = "bearer"
    user_id: UUID
    role: str


class TotpChallengeOut(BaseModel):
    """Returned when the password was accepted and a TOTP code is required."""

    totp_required: bool = True
    pending_token: str
    expires_at: datetime


class TotpLoginIn(BaseModel):
    """Request body for the second factor.

    The pending token may be omitted when it is carried by the pending cookie.
    """

    code: str = Field(min_length=1, max_length=32)
    pending_token: Optional[str] = None


class TotpCancelIn(BaseModel):
    pending_token: Optional[str] = None


def _set_pending_cookie(response: Response, pending: PendingLoginToken) -> None:
    response.set_cookie(
        key=settings.pending_login_cookie_name,
        value=pending.token,
        expires=pending.expires_at,
        path="/",
        secure=settings.pending_login_cookie_secure,
        httponly=settings.pending_login_cookie_httponly,
        samesite=settings.pending_login_cookie_samesite,
    )


def _clear_pending_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.pending_login_cookie_name,
        path="/",
        secure=settings.pending_login_cookie_secure,
        httponly=settings.pending_login_cookie_httponly,
        samesite=settings.pending_login_cookie_samesite,
    )


def _pending_token(request: Request, explicit: Optional[str]) -> Optional[str]:
    return explicit or request.cookies.get(settings.pending_login_cookie_name)


def _token_out(user: User, methods: tuple[str, ...]) -> TokenOut:
    token = create_access_token(user_id=user.id, role=user.role, methods=methods)
    return TokenOut(access_token=token, user_id=user.id, role=user.role.value)


@router.post("/login", response_model=Union[TokenOut, TotpChallengeOut])
async def login(payload: LoginIn, response: Response, db: Db) -> Union[TokenOut, TotpChallengeOut]:
    """Check the password and either return a JWT or start the TOTP step.

    Args:
        payload: Login payload.
        response: Outgoing response, receives the pending cookie.
        db: MongoDB database dependency.

    Returns:
        TokenOut | TotpChallengeOut: Access token, or a pending token when
        the user has TOTP enabled.

    Raises:
        HTTPException: If credentials are invalid.
    """
    repo = UserRepository(db)
    user = await repo.get_by_name(payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if needs_rehash(user.password_hash):
        try:
            await repo.update_password_hash(user_id=user.id, password_hash=hash_password(payload.password))
        except Exception as ex:
            logger.warning("Password rehash failed", extra={"user_id": str(user.id)}, exc_info=ex)

    credentials = TotpCredentialService(repo)
    if credentials.has_setup(user):
        pending = await PendingLoginService(PendingLoginRepository(db)).issue(str(user.id))
        _set_pending_cookie(response, pending)
        logger.info("Password accepted, TOTP required", extra={"user_id": str(user.id)})
        return TotpChallengeOut(pending_token=pending.token, expires_at=pending.expires_at)

    logger.info("User logged in", extra={"user_id": str(user.id), "role": user.role.value})
    return _token_out(user, ("pwd",))


@router.post("/totp/login", response_model=TokenOut)
async def totp_login(payload: TotpLoginIn, request: Request, response: Response, db: Db) -> TokenOut:
    """Complete a login with the TOTP second factor.

    Every failure (unknown or expired token, missing user, TOTP not enabled,
    malformed or wrong code) yields the same 401.

    Raises:
        HTTPException: If the second factor is not accepted.
    """
    token = _pending_token(request, payload.pending_token)
    pending = PendingLoginService(PendingLoginRepository(db))
    user_id = await pending.resolve(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    repo = UserRepository(db)
    user = await repo.get_by_id(UUID(user_id))
    if user is None or not TotpCredentialService(repo).validate_login(user, payload.code):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await pending.clear(token)
    _clear_pending_cookie(response)

    logger.info("User TOTP logged in", extra={"user_id": str(user.id), "role": user.role.value})
    return _token_out(user, ("pwd", "otp"))


@router.post("/totp/cancel")
async def totp_cancel(payload: TotpCancelIn, request: Request, response: Response, db: Db) -> dict[str, str]:
    """Abandon a pending TOTP login."""
    await PendingLoginService(PendingLoginRepository(db)).clear(_pending_token(request, payload.pending_token))
    _clear_pending_cookie(response)
    return {"status": "ok"}
