"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for VaultGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation of the two signing
      secrets once every field is resolved.

Security notes:
  [S1] Pre-auth and access tokens are signed with independent secrets. A leaked
       PRE_AUTH_SECRET_KEY must not be enough to forge an access token, so the
       validator refuses to start when both keys are identical.

  [S2] In production mode (DEBUG not set or false), a missing signing key is a
       hard startup failure. Keys shorter than 32 chars are always rejected.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or audit/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("vaultguard.config")

_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The validator either
    # generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    pre_auth_secret_key: str = ""

    # ------------------------------------------------------------------
    # Tokens and one-time codes
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 8 * 60 * 60
    pre_auth_token_expire_seconds: int = 5 * 60
    mfa_code_ttl_seconds: int = 5 * 60

    # Static per-user fallback codes exist only for demo/seed accounts.
    # Leave disabled in production builds.
    demo_mfa_fallback_enabled: bool = False
    seed_demo_accounts: bool = False

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    auth_rate_limit: str = "10/15minutes"
    allowed_origins: str = "http://localhost:3000"
    allowed_hosts: str = "localhost,127.0.0.1,testserver"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    auth_db_url: str = "sqlite:///vaultguard_auth.db"
    audit_db_url: str = "sqlite:///vaultguard_audit.db"

    # ------------------------------------------------------------------
    # Outbound email (optional -- empty host means dev mode, codes are not sent)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = False  # True = STARTTLS, False = implicit SSL
    smtp_from: str = ""
    smtp_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Enforce the signing-key policy for both token kinds [S1] [S2].

        Dev mode (DEBUG=true): missing keys are auto-generated with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if either key is missing.
        """
        for field_name, env_name in (("secret_key", "SECRET_KEY"), ("pre_auth_secret_key", "PRE_AUTH_SECRET_KEY")):
            value = getattr(self, field_name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{env_name} is required in production mode. "
                        f"Set {env_name} in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, field_name, value)
                logger.warning("Using auto-generated %s. Sessions will not persist across restarts.", env_name)
            if len(value) < _MIN_KEY_LENGTH:
                raise ValueError(f"{env_name} must be at least {_MIN_KEY_LENGTH} characters.")
        if self.secret_key == self.pre_auth_secret_key:
            raise ValueError("SECRET_KEY and PRE_AUTH_SECRET_KEY must be different.")
        return self

    @property
    def origin_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def host_list(self) -> list[str]:
        return [h.strip() for h in self.allowed_hosts.split(",") if h.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
