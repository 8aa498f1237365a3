from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, Field

from totpkit.api.deps import CurrentUser, Db
from totpkit.domain.enums import CredentialState
from totpkit.domain.exceptions import CredentialConflict, PersistenceFailure, RandomSourceFailure
from totpkit.domain.models import TotpCredential, TotpSetupResponse, TotpVerifyResult
from totpkit.repositories.users import UserRepository
from totpkit.services.credentials import TotpCredentialService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/totp", tags=["totp"])


class TotpCodeIn(BaseModel):
    """Request body carrying a code from the authenticator app."""

    code: str = Field(min_length=1, max_length=32)


class TotpStatusOut(BaseModel):
    """TOTP state of the current user."""

    enabled: bool
    state: CredentialState
    verified_at: Optional[datetime] = None

    @classmethod
    def from_credential(cls, credential: TotpCredential) -> "TotpStatusOut":
        return cls(enabled=credential.is_set_up, state=credential.state, verified_at=credential.verified_at)


def _conflict(user_id: str) -> HTTPException:
    logger.warning("TOTP credential changed concurrently", extra={"user_id": user_id})
    return HTTPException(status_code=409, detail="TOTP state changed, retry")


def _unavailable(ex: Exception, user_id: str) -> HTTPException:
    logger.error("TOTP operation failed", extra={"user_id": user_id, "error": type(ex).__name__})
    return HTTPException(status_code=503, detail="TOTP service unavailable")


@router.get("/status", response_model=TotpStatusOut)
async def totp_status(current_user: CurrentUser) -> TotpStatusOut:
    return TotpStatusOut.from_credential(current_user.totp)


@router.post("/setup", response_model=TotpSetupResponse)
async def totp_setup(db: Db, current_user: CurrentUser) -> TotpSetupResponse:
    """Start TOTP enrollment for the current user.

    Generates a secret on first call and returns the same secret on later
    calls until the enrollment is verified or disabled.

    Raises:
        HTTPException: 409 if TOTP is already enabled or changed concurrently,
            503 on store or entropy failures.
    """
    svc = TotpCredentialService(UserRepository(db))
    if svc.has_setup(current_user):
        raise HTTPException(status_code=409, detail="TOTP already enabled")

    try:
        return await svc.generate_setup(current_user)
    except CredentialConflict as ex:
        raise _conflict(str(current_user.id)) from ex
    except (PersistenceFailure, RandomSourceFailure) as ex:
        raise _unavailable(ex, str(current_user.id)) from ex


@router.post("/verify", response_model=TotpVerifyResult)
async def totp_verify(payload: TotpCodeIn, response: Response, db: Db, current_user: CurrentUser) -> TotpVerifyResult:
    """Confirm enrollment with a code and enable TOTP.

    A rejected code returns the result with status 400. A credential changed
    by a concurrent request returns 409.
    """
    svc = TotpCredentialService(UserRepository(db))
    try:
        result, _ = await svc.verify_and_enable(current_user, payload.code)
    except CredentialConflict as ex:
        raise _conflict(str(current_user.id)) from ex
    except PersistenceFailure as ex:
        raise _unavailable(ex, str(current_user.id)) from ex

    if not result.success:
        response.status_code = 400
    return result


@router.post("/disable", response_model=TotpStatusOut)
async def totp_disable(db: Db, current_user: CurrentUser) -> TotpStatusOut:
    svc = TotpCredentialService(UserRepository(db))
    try:
        credential = await svc.disable(current_user)
    except PersistenceFailure as ex:
        raise _unavailable(ex, str(current_user.id)) from ex
    return TotpStatusOut.from_credential(credential)
