"""Local data handlers."""

from .base import BaseLocalDataHandler
from .directory import DirectoryDataHandler

__all__ = [
    "BaseLocalDataHandler",
    "DirectoryDataHandler",
]
