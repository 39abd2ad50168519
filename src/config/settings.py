"""Application settings using Pydantic Settings.

Centralized configuration for the tenant administration engine.
All values can be overridden with environment variables using the
TENANCY_ prefix, e.g. TENANCY_IMPERSONATION_MAX_TTL_SECONDS=3600.
"""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", description="development, test, staging, production")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    # Impersonation ("view as user") sessions
    impersonation_default_ttl_seconds: int = Field(
        default=4 * 60 * 60,
        ge=60,
        description="Session lifetime when the caller does not ask for one (4 hours)",
    )
    impersonation_max_ttl_seconds: int = Field(
        default=8 * 60 * 60,
        ge=60,
        description="Hard ceiling on any requested session lifetime",
    )
    impersonation_token_bytes: int = Field(
        default=32,
        ge=16,
        description="Random bytes per session token (16 bytes = 128 bits minimum)",
    )

    # Account lifecycle
    default_trial_days: int = Field(default=14, ge=0, description="Trial length for new accounts")
    sub_account_trial_days: int = Field(default=30, ge=0, description="Trial length for franchise sub-accounts")
    franchise_sub_account_limit: int = Field(default=50, ge=0, description="Default max sub-accounts per franchise")

    # Fallback limits used when neither override tier supplies custom limits
    fallback_max_customers: int = Field(default=1000, ge=0)
    fallback_max_monthly_emails: int = Field(default=5000, ge=0)
    fallback_max_users: int = Field(default=5, ge=0)
    fallback_data_retention_days: int = Field(default=365, ge=0)

    # The very first profile ever created becomes the platform operator.
    # There is no supported path for provisioning a second operator.
    bootstrap_first_operator: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_ttl_bounds(self) -> "Settings":
        if self.impersonation_default_ttl_seconds > self.impersonation_max_ttl_seconds:
            raise ValueError("impersonation_default_ttl_seconds cannot exceed impersonation_max_ttl_seconds")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod", "staging")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    logger.debug(f"Loaded settings for environment={settings.environment}")
    return settings
