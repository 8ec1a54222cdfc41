"""Configuration package for filesync."""

from .settings import (
    SyncSettings,
    LoggingSettings,
    AppSettings,
    get_settings
)

from .schema import (
    SyncProfile,
    FOLDER_PROFILE_EXAMPLE
)

from .loader import (
    ProfileLoader,
    ConfigurationError,
    build_sync_service
)

__all__ = [
    "SyncSettings",
    "LoggingSettings",
    "AppSettings",
    "get_settings",

    "SyncProfile",
    "FOLDER_PROFILE_EXAMPLE",

    "ProfileLoader",
    "ConfigurationError",
    "build_sync_service"
]
