"""Profile loader for JSON/YAML files and environment variables."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from ..utils.logging import get_logger, setup_logging
from .schema import SyncProfile


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


class ProfileLoader:
    """Loads and validates sync profiles."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncProfile:
        """Load a profile from a JSON or YAML file.

        Args:
            file_path: Path to the profile file

        Returns:
            Validated SyncProfile

        Raises:
            ConfigurationError: If the file cannot be loaded or validated
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Profile file not found: {file_path}")

        self.logger.info("Loading profile from file", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                elif file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read profile: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Profile file must contain a mapping: {file_path}")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> SyncProfile:
        """Load a profile from a dictionary.

        Raises:
            ConfigurationError: If the data does not describe a valid profile
        """
        data = self._apply_env_overrides(data)

        try:
            profile = SyncProfile(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid profile: {e}")

        self.logger.info(
            "Profile loaded",
            name=profile.name,
            service_type=profile.service_type.description
        )
        return profile

    def save_to_file(self, profile: SyncProfile, file_path: Union[str, Path], format: str = 'yaml'):
        """Save a profile to file.

        Args:
            profile: Profile to save
            file_path: Output file path
            format: Output format ('yaml' or 'json')
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        data = profile.model_dump(mode="json")
        data["service_type"] = profile.service_type.name.lower()

        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                if format.lower() == 'yaml':
                    yaml.safe_dump(data, f, default_flow_style=False, indent=2, allow_unicode=True)
                elif format.lower() == 'json':
                    json.dump(data, f, indent=2)
                else:
                    raise ConfigurationError(f"Unsupported format: {format}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save profile: {e}")

        self.logger.info("Profile saved", file_path=str(file_path))

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to profile data.

        ``FILESYNC_LOCAL_DIRECTORY`` and ``FILESYNC_MAX_CONCURRENT_OPERATIONS``
        replace the values from the file.
        """
        env_overrides: Dict[str, Any] = {}

        if os.getenv('FILESYNC_LOCAL_DIRECTORY'):
            env_overrides['local_directory'] = os.getenv('FILESYNC_LOCAL_DIRECTORY')

        if os.getenv('FILESYNC_MAX_CONCURRENT_OPERATIONS'):
            try:
                env_overrides['max_concurrent_operations'] = int(os.getenv('FILESYNC_MAX_CONCURRENT_OPERATIONS'))
            except ValueError:
                self.logger.warning("Invalid FILESYNC_MAX_CONCURRENT_OPERATIONS value, ignoring")

        if env_overrides:
            self.logger.info("Applied environment variable overrides", overrides=list(env_overrides.keys()))
            data = {**data, **env_overrides}

        return data


def build_sync_service(profile: SyncProfile, **kwargs):
    """Wire a storage backend, a directory handler and a sync service for a profile.

    Logging is configured from settings on first use, and the service logs
    with ``profile`` and ``service_type`` bound unless a logger is passed.

    Args:
        profile: Validated profile
        **kwargs: Passed to SyncService (``callback_loop``, ``logger``)

    Returns:
        Ready-to-use SyncService
    """
    from ..backends import StorageBackendFactory
    from ..core.sync_service import SyncService
    from ..handlers import DirectoryDataHandler

    setup_logging()
    context = {"profile": profile.name, "service_type": profile.service_type.description}
    kwargs.setdefault("logger", get_logger(SyncService.__name__, **context))

    backend = StorageBackendFactory.create_backend(profile.service_type, profile.backend_details)
    handler = DirectoryDataHandler(
        profile.local_directory,
        extensions=profile.extensions,
        logger=get_logger(DirectoryDataHandler.__name__, **context)
    )
    return SyncService(
        backend,
        handler,
        max_concurrent_operations=profile.max_concurrent_operations,
        **kwargs
    )
