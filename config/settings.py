"""
Runtime configuration for the rule engine.

Values come from environment variables prefixed with AUTOMATION_ (or a local
.env file), falling back to the defaults below.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUTOMATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(default="sqlite:///automations.db", description="SQLAlchemy URL of the relational store")

    log_level: str = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    action_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for a single handler attempt")
    max_action_retries: int = Field(default=3, ge=0, le=3)
    retry_backoff_base_seconds: float = Field(default=0.5, ge=0)
    retry_backoff_max_seconds: float = Field(default=5.0, ge=0)

    max_concurrent_firings: int = Field(default=16, ge=1, description="Worker threads running rule firings")
    scheduler_interval_seconds: float = Field(default=60.0, gt=0)
    stuck_execution_after_seconds: int = Field(default=300, ge=1)
    sun_times_max_age_days: int = Field(default=7, ge=1)
    subscriber_queue_size: int = Field(default=500, ge=1)
    default_timezone: str = Field(default="UTC")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
