"""
Configuration and settings for the Ngage service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the API, worker and functions."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Firebase
    firebase_project_id: Optional[str] = Field(
        default=None, env="FIREBASE_PROJECT_ID"
    )
    firebase_storage_bucket: Optional[str] = Field(
        default=None, env="FIREBASE_STORAGE_BUCKET"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices("NGAGE_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"),
    )

    # Delivery queue (Redis)
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_queue_key: str = Field(default="ngage:deliveries", env="REDIS_QUEUE_KEY")

    # Offline pending-operation store
    offline_store_url: Optional[str] = Field(default=None, env="OFFLINE_STORE_URL")

    # Worker cadence
    deadline_check_interval_seconds: float = Field(default=60.0)
    offline_sync_interval_seconds: float = Field(default=60.0)
    maintenance_interval_seconds: float = Field(default=3600.0)

    # Email via Amazon SES
    aws_region: Optional[str] = Field(default=None, env="AWS_REGION")
    ses_sender: Optional[str] = Field(default=None, env="SES_SENDER")

    # Logging
    log_level: str = Field(
        default="INFO", validation_alias=AliasChoices("NGAGE_LOG_LEVEL", "log_level")
    )
    recent_log_capacity: int = Field(default=1000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
