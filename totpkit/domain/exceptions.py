from __future__ import annotations


class TotpError(Exception):
    """Base class for TOTP errors."""


class TotpVerificationError(TotpError):
    """A submitted code could not be accepted.

    Subclasses are recovered into a boolean outcome inside the service layer
    and are never surfaced to callers, which only see a generic failure.
    """


class InvalidCodeFormat(TotpVerificationError):
    """The code is not exactly six ASCII digits."""


class CodeMismatch(TotpVerificationError):
    """The code is well formed but matches no step in the accepted window."""


class NotEnrolled(TotpVerificationError):
    """The operation needs a secret (or an enabled credential) that is absent."""


class PersistenceFailure(TotpError):
    """The credential store failed to save a credential."""

    def __init__(self, message: str, user_id: str | None = None):
        super().__init__(message)
        self.user_id = user_id


class CredentialConflict(PersistenceFailure):
    """The stored credential no longer matches the state a change was computed from."""


class RandomSourceFailure(TotpError):
    """The entropy source failed while generating a secret."""
