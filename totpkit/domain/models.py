from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from totpkit.domain.enums import CredentialState, UserRole


def utc_now() -> datetime:
    """Return current UTC datetime.

    Returns:
        datetime: Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


class TotpCredential(BaseModel):
    """TOTP credential attached to a user record.

    The value is immutable: every transition returns a new credential which
    the caller persists as a whole.

    Attributes:
        secret: Base32 shared secret, present once generated.
        enabled: Whether the secret has been verified at least once.
        verified_at: UTC timestamp of the enrollment verification.
    """

    model_config = ConfigDict(frozen=True)

    secret: Optional[str] = None
    enabled: bool = False
    verified_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _enabled_requires_secret(self) -> "TotpCredential":
        if self.enabled and not self.secret:
            raise ValueError("an enabled TOTP credential requires a secret")
        return self

    @property
    def state(self) -> CredentialState:
        if not self.secret:
            return CredentialState.UNCONFIGURED
        if not self.enabled:
            return CredentialState.PENDING_VERIFICATION
        return CredentialState.ENABLED

    @property
    def is_set_up(self) -> bool:
        return self.enabled and bool(self.secret)

    def with_secret(self, secret: str) -> "TotpCredential":
        """Return a pending-verification credential holding `secret`."""
        return TotpCredential(secret=secret, enabled=False, verified_at=None)

    def enable(self, now: datetime) -> "TotpCredential":
        """Return the enabled credential.

        The enrollment timestamp of an already enabled credential is kept.
        """
        if self.enabled:
            return self
        return TotpCredential(secret=self.secret, enabled=True, verified_at=now)

    def cleared(self) -> "TotpCredential":
        return TotpCredential()


class User(BaseModel):
    """Application user.

    Attributes:
        id: User UUID.
        name: Unique alphanumeric username.
        email_address: Unique email address, used as the authenticator account label.
        role: User role (USER/ADMINISTRATOR).
        password_hash: Password hash stored server-side (argon2).
        totp: TOTP credential (second factor).
    """

    id: UUID
    name: str
    email_address: EmailStr
    role: UserRole = UserRole.USER

    password_hash: str = Field(min_length=1, description="Password hash.")

    totp: TotpCredential = Field(default_factory=TotpCredential)


class TotpInstructions(BaseModel):
    """Human readable enrollment instructions."""

    web: str = "Scan the QR code with your authenticator app"
    mobile: str = "Enter the 32-character key in your authenticator app manually"
    general: str = "After setup, enter the 6-digit code to confirm"


class TotpSetupResponse(BaseModel):
    """Enrollment material returned for a setup request.

    Built fresh on every request and never stored.

    Attributes:
        success: Whether setup material could be produced.
        message: Error message, if any.
        secret_key: Base32 secret.
        qr_code_uri: otpauth provisioning URI.
        manual_entry_key: Secret with spaces and hyphens stripped.
        instructions: Enrollment instructions.
    """

    success: bool = True
    message: str = ""
    secret_key: str = ""
    qr_code_uri: str = ""
    manual_entry_key: str = ""
    instructions: TotpInstructions = Field(default_factory=TotpInstructions)


class TotpVerifyResult(BaseModel):
    """Outcome of an enrollment verification."""

    success: bool
    message: str = ""
    warning: str = ""


class PendingLogin(BaseModel):
    """Stored record of a user awaiting the second factor.

    Attributes:
        token_hash: SHA-256 hex digest of the opaque token.
        user_id: User id as string.
        created_at: UTC timestamp.
        expires_at: UTC timestamp after which the token no longer resolves.
    """

    token_hash: str
    user_id: str
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime


class PendingLoginToken(BaseModel):
    """Opaque token handed to the client between the two login factors."""

    token: str
    user_id: str
    expires_at: datetime
