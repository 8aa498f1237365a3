"""TOTP credential lifecycle.

States of a credential: UNCONFIGURED (no secret) -> PENDING_VERIFICATION
(secret, not enabled) -> ENABLED. Disabling clears the credential back to
UNCONFIGURED.

Transitions are computed on immutable `TotpCredential` values; the only side
effects are the random source and `CredentialStore.update_credential`.
Generating and enabling write with the credential they were computed from as
the expected prior value, so a stale request cannot undo a concurrent change.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Optional, Protocol
from urllib.parse import quote

from totpkit.core.config import settings
from totpkit.domain.exceptions import (
    CodeMismatch,
    CredentialConflict,
    InvalidCodeFormat,
    NotEnrolled,
    PersistenceFailure,
    RandomSourceFailure,
    TotpVerificationError,
)
from totpkit.domain.models import TotpCredential, TotpSetupResponse, TotpVerifyResult, User, utc_now
from totpkit.services import base32, totp

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid TOTP code"


class CredentialStore(Protocol):
    """Persists a user's TOTP credential atomically."""

    async def update_credential(
        self,
        *,
        user_id: str,
        expected: Optional[TotpCredential],
        credential: TotpCredential,
    ) -> bool:
        """Replace the stored credential.

        When `expected` is given, the write only applies if the stored secret
        and enabled flag still equal it. None writes unconditionally.

        Returns:
            bool: False if no user record matched.
        """
        ...


class AccountInfo(Protocol):
    """Host-specific accessors for a user object."""

    def get_account_label(self, user: Any) -> str: ...

    def get_account_id(self, user: Any) -> str: ...

    def get_credential(self, user: Any) -> TotpCredential: ...


class UserAccountInfo:
    """AccountInfo for `totpkit.domain.models.User`."""

    def get_account_label(self, user: User) -> str:
        return str(user.email_address)

    def get_account_id(self, user: User) -> str:
        return str(user.id)

    def get_credential(self, user: User) -> TotpCredential:
        return user.totp


class TotpCredentialService:
    """Generates, verifies, enables and disables TOTP credentials.

    Args:
        store: Credential store used for every state change.
        account_info: Accessors for the host's user objects.
        issuer: Issuer shown in authenticator apps.
        clock: Returns the current time.
        random_bytes: Cryptographically secure source, called as `random_bytes(n)`.
        window: Steps accepted on each side of the current step.
        secret_bytes: Length of generated secrets.
    """

    def __init__(
        self,
        store: CredentialStore,
        account_info: Optional[AccountInfo] = None,
        *,
        issuer: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
        window: Optional[int] = None,
        secret_bytes: Optional[int] = None,
    ) -> None:
        self._store = store
        self._info: AccountInfo = account_info or UserAccountInfo()
        self._issuer = issuer or settings.effective_totp_issuer
        self._clock = clock
        self._random_bytes = random_bytes
        self._window = settings.totp_valid_window if window is None else window
        self._secret_bytes = secret_bytes or settings.totp_secret_bytes

    async def generate_secret(self, user: Any) -> TotpCredential:
        """Ensure the user has a secret.

        An existing secret is returned unchanged, so an active credential is
        never silently replaced.

        Args:
            user: Host user object.

        Returns:
            TotpCredential: Credential holding the secret.

        Raises:
            RandomSourceFailure: If the entropy source fails.
            CredentialConflict: If the stored credential changed after it was read.
            PersistenceFailure: If the store fails.
        """
        credential = self._info.get_credential(user)
        user_id = self._info.get_account_id(user)
        if credential.secret:
            logger.info("TOTP secret already present", extra={"user_id": user_id})
            return credential

        updated = credential.with_secret(base32.encode(self._new_secret(user_id)))
        await self._persist(user_id, updated, expected=credential)
        logger.info("TOTP secret generated", extra={"user_id": user_id})
        return updated

    def build_provisioning_uri(self, user: Any, secret_base32: str) -> str:
        """Build the otpauth URI consumed by authenticator apps.

        Args:
            user: Host user object.
            secret_base32: Base32 secret.

        Returns:
            str: otpauth://totp/... URI.
        """
        label = f"{self._issuer}:{self._info.get_account_label(user)}"
        return (
            f"otpauth://totp/{quote(label, safe='')}"
            f"?secret={secret_base32}"
            f"&issuer={quote(self._issuer, safe='')}"
            f"&algorithm=SHA1&digits={totp.DIGITS}&period={totp.PERIOD_SECONDS}"
        )

    async def generate_setup(self, user: Any) -> TotpSetupResponse:
        """Produce enrollment material, generating a secret if needed."""
        credential = await self.generate_secret(user)
        secret = credential.secret or ""
        uri = self.build_provisioning_uri(user, secret)
        logger.info("TOTP setup material built", extra={"user_id": self._info.get_account_id(user)})
        return TotpSetupResponse(
            secret_key=secret,
            qr_code_uri=uri,
            manual_entry_key=secret.replace(" ", "").replace("-", ""),
        )

    def validate_code(self, user: Any, code: str | None) -> bool:
        """Check a code against the user's secret at the current time."""
        return self._accepts(user, self._info.get_credential(user), code, self._clock())

    async def verify_and_enable(self, user: Any, code: str | None) -> tuple[TotpVerifyResult, TotpCredential]:
        """Verify a code and enable the credential.

        Args:
            user: Host user object.
            code: Code as entered by the user.

        Returns:
            tuple[TotpVerifyResult, TotpCredential]: Outcome and resulting credential
            (unchanged on failure).

        Raises:
            CredentialConflict: If the stored credential changed after it was read.
            PersistenceFailure: If the store fails.
        """
        credential = self._info.get_credential(user)
        now = self._clock()
        if not self._accepts(user, credential, code, now):
            return TotpVerifyResult(success=False, message=INVALID_CODE_MESSAGE), credential

        updated = credential.enable(now)
        if updated is not credential:
            user_id = self._info.get_account_id(user)
            await self._persist(user_id, updated, expected=credential)
            logger.info("TOTP enabled", extra={"user_id": user_id})

        result = TotpVerifyResult(
            success=True,
            message="TOTP enabled",
            warning="TOTP setup completed",
        )
        return result, updated

    async def disable(self, user: Any) -> TotpCredential:
        """Clear secret, enabled flag and verification date together.

        Disabling an already disabled credential succeeds.

        Raises:
            PersistenceFailure: If the store fails.
        """
        user_id = self._info.get_account_id(user)
        updated = self._info.get_credential(user).cleared()
        await self._persist(user_id, updated, expected=None)
        logger.info("TOTP disabled", extra={"user_id": user_id})
        return updated

    def validate_login(self, user: Any, code: str | None) -> bool:
        """Check a second-factor login code. Read-only."""
        return self._accepts(user, self._info.get_credential(user), code, self._clock(), require_enabled=True)

    def has_setup(self, user: Any) -> bool:
        return self._info.get_credential(user).is_set_up

    def _accepts(
        self,
        user: Any,
        credential: TotpCredential,
        code: str | None,
        now: datetime,
        *,
        require_enabled: bool = False,
    ) -> bool:
        user_id = self._info.get_account_id(user)
        try:
            self._check(credential, code, now, require_enabled=require_enabled)
        except TotpVerificationError as ex:
            logger.warning("TOTP validation failed", extra={"user_id": user_id, "reason": type(ex).__name__})
            return False
        logger.info("TOTP validation succeeded", extra={"user_id": user_id})
        return True

    def _check(self, credential: TotpCredential, code: str | None, now: datetime, *, require_enabled: bool) -> None:
        if not credential.secret:
            raise NotEnrolled("no TOTP secret")
        if require_enabled and not credential.enabled:
            raise NotEnrolled("TOTP not enabled")
        if not totp.is_well_formed(code):
            raise InvalidCodeFormat("code must be 6 digits")
        if not totp.verify(base32.decode(credential.secret), code, now, self._window):
            raise CodeMismatch("code does not match")

    def _new_secret(self, user_id: str) -> bytes:
        try:
            raw = self._random_bytes(self._secret_bytes)
        except Exception as ex:
            logger.error("Random source failed", extra={"user_id": user_id}, exc_info=ex)
            raise RandomSourceFailure("random source failed") from ex
        if not isinstance(raw, (bytes, bytearray)) or len(raw) != self._secret_bytes:
            logger.error("Random source returned short read", extra={"user_id": user_id})
            raise RandomSourceFailure("random source returned an unexpected number of bytes")
        return bytes(raw)

    async def _persist(self, user_id: str, credential: TotpCredential, *, expected: Optional[TotpCredential]) -> None:
        try:
            ok = await self._store.update_credential(user_id=user_id, expected=expected, credential=credential)
        except PersistenceFailure:
            raise
        except Exception as ex:
            logger.error("TOTP credential update failed", extra={"user_id": user_id}, exc_info=ex)
            raise PersistenceFailure("credential store failed", user_id=user_id) from ex
        if not ok and expected is not None:
            logger.warning("TOTP credential changed concurrently", extra={"user_id": user_id})
            raise CredentialConflict("credential changed since it was read", user_id=user_id)
        if not ok:
            logger.error("TOTP credential update matched no user", extra={"user_id": user_id})
            raise PersistenceFailure("no user record to update", user_id=user_id)
