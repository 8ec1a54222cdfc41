"""Storage backends for remote folders."""

from .base import BaseStorageBackend
from .folder import FolderStorageBackend
from .memory import MemoryStorageBackend
from .factory import StorageBackendFactory

__all__ = [
    "BaseStorageBackend",
    "FolderStorageBackend",
    "MemoryStorageBackend",
    "StorageBackendFactory",
]
