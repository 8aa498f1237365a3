from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    ADMINISTRATOR = "ADMINISTRATOR"


class CredentialState(str, Enum):
    # A disabled credential has no secret and reads back as UNCONFIGURED.
    UNCONFIGURED = "UNCONFIGURED"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ENABLED = "ENABLED"
