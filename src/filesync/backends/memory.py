"""In-process storage backend.

Keeps remote files in a dict keyed by filename. Removed files can be kept as
tombstones, the way providers that track deletions report them.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import FileAlreadyExistsError, NoContentError
from ..models import FileDescriptor, FileState, OperationResult, RenameChange, ServiceType
from .base import BaseStorageBackend


@dataclass
class _StoredFile:
    data: Optional[bytes]
    updated_at: datetime

    @property
    def is_tombstone(self) -> bool:
        return self.data is None


class MemoryStorageBackend(BaseStorageBackend):
    """Storage backend holding its remote folder in memory."""

    ERROR_MAP = (
        (KeyError, lambda e, filename: NoContentError(filename or str(e))),
    )

    def __init__(self, backend_details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(backend_details, **kwargs)

        self.keep_tombstones = bool(self.backend_details.get("keep_tombstones", False))
        self.authenticated = bool(self.backend_details.get("authenticated", True))
        self.ready_for_syncing = bool(self.backend_details.get("ready_for_syncing", True))
        self._files: Dict[str, _StoredFile] = {}

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated

    @property
    def is_ready_for_syncing(self) -> bool:
        return self.authenticated and self.ready_for_syncing

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.NONE

    def add_file(self, filename: str, data: bytes, updated_at: Optional[datetime] = None) -> None:
        """Seed a remote file."""
        self._files[filename] = _StoredFile(data, updated_at or datetime.now(timezone.utc))

    def add_tombstone(self, filename: str, updated_at: Optional[datetime] = None) -> None:
        """Seed a remote deletion record."""
        self._files[filename] = _StoredFile(None, updated_at or datetime.now(timezone.utc))

    def has_file(self, filename: str) -> bool:
        stored = self._files.get(filename)
        return stored is not None and not stored.is_tombstone

    def get_file(self, filename: str) -> Optional[bytes]:
        stored = self._files.get(filename)
        return None if stored is None else stored.data

    def filenames(self) -> List[str]:
        """Names of the live (non-tombstone) files."""
        return sorted(name for name, stored in self._files.items() if not stored.is_tombstone)

    async def list_root_folder(self) -> List[FileDescriptor]:
        descriptors = []
        for filename, stored in self._files.items():
            descriptors.append(
                FileDescriptor(
                    filename=filename,
                    state=FileState.DELETED if stored.is_tombstone else FileState.NORMAL,
                    updated_at=stored.updated_at,
                    size_bytes=None if stored.is_tombstone else len(stored.data),
                    remote_locator=filename,
                )
            )
        self.logger.debug("Listed memory store", count=len(descriptors))
        return descriptors

    async def _perform_upload(self, descriptor: FileDescriptor, overwrite: bool) -> None:
        if descriptor.local_locator is None:
            raise NoContentError(descriptor.filename)

        if self.has_file(descriptor.filename) and not overwrite:
            raise FileAlreadyExistsError(descriptor.filename)

        data = await self._run_blocking(Path(descriptor.local_locator).read_bytes)
        self._files[descriptor.filename] = _StoredFile(data, descriptor.updated_at)

    async def download(self, descriptor: FileDescriptor) -> bytes:
        if not self.has_file(descriptor.filename):
            raise NoContentError(descriptor.filename)
        return self._files[descriptor.filename].data

    async def remove(self, descriptor: FileDescriptor) -> OperationResult:
        if descriptor.filename not in self._files:
            return OperationResult.ok()

        if self.keep_tombstones:
            self._files[descriptor.filename] = _StoredFile(None, datetime.now(timezone.utc))
        else:
            del self._files[descriptor.filename]
        return OperationResult.ok()

    async def rename(self, changes: List[RenameChange]) -> OperationResult:
        errors = self.validate_renames(changes, self.has_file)
        if errors:
            return OperationResult.failed(errors)

        for source, destination in changes:
            stored = self._files.pop(source.filename)
            self._files[destination.filename] = stored
        return OperationResult.ok()
