from __future__ import annotations

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    This project uses `pydantic-settings` so values can be provided via:
    - environment variables
    - a local `.env` file

    Attributes:
        mongodb_uri: MongoDB connection URI.
        mongodb_db: MongoDB database name.
        mongodb_timeout_ms: Server selection timeout of the MongoDB client.
        jwt_secret: Secret key used to sign JWT tokens (override in env for production).
        jwt_algorithm: JWT signing algorithm.
        jwt_access_token_exp_minutes: Access token expiration time in minutes.
        totp_app_name: Application name, used as issuer when none is configured.
        totp_issuer: Issuer shown in authenticator apps.
        totp_valid_window: Number of 30s steps accepted on each side of the current step.
        totp_secret_bytes: Length of generated shared secrets in bytes.
        pending_login_ttl_minutes: Lifetime of a pending second-factor login.
        pending_login_cookie_name: Cookie carrying the pending login token.
        pending_login_cookie_secure: Send the pending cookie over HTTPS only.
        pending_login_cookie_httponly: Hide the pending cookie from scripts.
        pending_login_cookie_samesite: SameSite policy of the pending cookie.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "totpkit"
    mongodb_timeout_ms: int = 5000

    # JWT
    jwt_secret: str = os.environ.get("JWT_SECRET", "jwt-secret-for-dev-only")
    jwt_algorithm: str = "HS256"
    jwt_access_token_exp_minutes: int = 60

    # TOTP
    totp_app_name: str = "TotpKit"
    totp_issuer: str = ""
    totp_valid_window: int = 1
    totp_secret_bytes: int = 20

    # Pending second-factor login
    pending_login_ttl_minutes: int = 10
    pending_login_cookie_name: str = "totp_pending"
    pending_login_cookie_secure: bool = False
    pending_login_cookie_httponly: bool = True
    pending_login_cookie_samesite: str = "lax"

    @property
    def effective_totp_issuer(self) -> str:
        """Issuer used in provisioning URIs, falling back to the app name."""
        return self.totp_issuer or self.totp_app_name


settings = Settings()  # loads env/.env via pydantic-settings

if not settings.jwt_secret:
    raise RuntimeError("Missing required secret: JWT_SECRET")
