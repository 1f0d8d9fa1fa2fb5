"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Cash Cow happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. Rejects configurations the stores cannot run with.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or livestock/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cashcow.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'cashcow.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Upper bound for a single store operation. Exceeding it cancels the
    # statement and surfaces OperationTimeoutError.
    db_timeout_seconds: float = 3.0

    # ------------------------------------------------------------------
    # Credentials and tokens
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    activation_token_ttl_seconds: int = 3 * 24 * 60 * 60
    authentication_token_ttl_seconds: int = 24 * 60 * 60
    password_reset_token_ttl_seconds: int = 45 * 60

    # Granted to every newly registered account.
    default_permissions: list[str] = ["livestock:read"]

    # ------------------------------------------------------------------
    # Listing queries
    # ------------------------------------------------------------------

    max_page_size: int = Field(default=100, ge=1)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    rate_limit_enabled: bool = True
    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Mail (optional -- empty smtp_host disables delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender: str = "Cash Cow <no-reply@cashcow.local>"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_database(self) -> "Settings":
        """Refuse to start without a usable database configuration."""
        if not self.database_url:
            raise ValueError("DATABASE_URL must not be empty.")
        if self.db_timeout_seconds <= 0:
            raise ValueError("DB_TIMEOUT_SECONDS must be greater than zero.")
        if self.debug and self.bcrypt_rounds < 10:
            logger.warning("bcrypt cost factor %d is below the production default", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
