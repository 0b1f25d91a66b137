# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..retry import RetryPolicy


class Settings(BaseSettings):
    """Jira integration settings.

    All settings can be overridden via environment variables. The three
    Jira secrets keep their historical names (JIRA_API_TOKEN, JIRA_EMAIL,
    JIRA_BASE_URL) so existing deployments keep working.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Jira Cloud
    jira_api_token: str = ""
    jira_email: str = ""
    jira_base_url: str = ""
    jira_api_prefix: str = "/rest/api/3"
    jira_timeout_seconds: float = 30.0

    # Metadata cache
    cache_ttl_seconds: float = 300.0
    cache_sweep_interval_seconds: float = 600.0

    # Retry (opt-in, applied by JiraService)
    retry_enabled: bool = False
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("jira_api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Normalize the REST prefix to '/segment' form."""
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @field_validator("retry_max_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        return v

    def retry_policy(self) -> RetryPolicy | None:
        """Return the configured retry policy, or None when retry is disabled."""
        if not self.retry_enabled:
            return None
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
