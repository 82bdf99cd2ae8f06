"""
core/config.py -- SessionGuard settings, read once from the environment.

Every knob lives on Settings; other modules call get_settings() and never
touch os.environ themselves. Values come from environment variables (or a
local .env file), matched case-insensitively against the field names, so
session_max_age_seconds is set with SESSION_MAX_AGE_SECONDS.

Startup checks (model validators):
  SECRET_KEY   keys every CSRF token. Missing in DEBUG: a random one is
               generated and a warning logged. Missing otherwise: startup
               fails. Shorter than 32 characters: startup fails.
  ENABLE_DEBUG_ENDPOINTS
               mounts /debug-users, which lists every account. Refused
               unless DEBUG is also on.

Layer rule: core/ is the kernel. Nothing here imports api/, web/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionguard.config")

_MIN_SECRET_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Runtime configuration. Every field has a default except SECRET_KEY outside DEBUG."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_secret_key replaces or rejects it.
    secret_key: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "session_id"
    # Fixed lifetime measured from session creation, not refreshed on activity.
    session_max_age_seconds: int = Field(default=60, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # Throttling
    # ------------------------------------------------------------------

    login_max_attempts: int = Field(default=5, gt=0)
    login_window_seconds: int = Field(default=15 * 60, gt=0)
    # slowapi limit string for the app-wide per-IP cap.
    request_rate_limit: str = "120/minute"

    # ------------------------------------------------------------------
    # Storage / housekeeping
    # ------------------------------------------------------------------

    database_url: str = "sqlite://"
    purge_interval_seconds: int = Field(default=300, gt=0)

    # ------------------------------------------------------------------
    # Development only
    # ------------------------------------------------------------------

    enable_debug_endpoints: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY.

        A generated key changes on every restart, which invalidates issued
        CSRF tokens. Sessions are in memory and die on restart as well.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required unless DEBUG=true. "
                    "Export it or add it to .env."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a temporary one for this DEBUG run")
        if len(self.secret_key) < _MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_KEY_LENGTH} characters.")
        return self

    @model_validator(mode="after")
    def validate_debug_endpoints(self) -> "Settings":
        """Refuse to expose the user listing outside development mode."""
        if self.enable_debug_endpoints and not self.debug:
            raise ValueError("ENABLE_DEBUG_ENDPOINTS requires DEBUG=true. Never enable it in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first call and return the same instance afterwards.

    Tests that need a different environment construct Settings() directly
    or call get_settings.cache_clear().
    """
    return Settings()
