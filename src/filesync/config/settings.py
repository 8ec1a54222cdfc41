"""Application configuration settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Sync pass configuration."""

    max_concurrent_operations: int = Field(default=8, ge=1)
    max_rate_limit_retries: Optional[int] = Field(
        default=None,
        description="Cap on rate-limited upload retries (None = retry until accepted)"
    )
    default_rate_limit_delay: float = Field(default=5.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="FILESYNC_SYNC_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="FILESYNC_LOG_")


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="filesync")
    environment: str = Field(default="development")

    # Sub-settings
    sync: SyncSettings = SyncSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="FILESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
