"""Storage backend for a container folder on the local filesystem.

This is the shape of an iCloud Drive style service: the provider mirrors a
directory, so listing and transfers are plain file operations on its root.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from ..errors import BackendIOError, FileAlreadyExistsError, NoContentError
from ..models import FileDescriptor, FileState, OperationResult, RenameChange, ServiceType
from .base import BaseStorageBackend


class FolderStorageBackend(BaseStorageBackend):
    """Remote folder backed by a directory the provider keeps in sync."""

    ERROR_MAP = (
        (FileNotFoundError, lambda e, filename: NoContentError(filename or str(e))),
        (FileExistsError, lambda e, filename: FileAlreadyExistsError(filename or str(e))),
        (OSError, lambda e, filename: BackendIOError(e, filename=filename)),
    )

    def __init__(self, backend_details: Dict[str, Any], **kwargs):
        """Initialize folder backend.

        Args:
            backend_details: Must contain ``root``, the container directory.
                ``create_root`` (default True) creates it when missing.
            **kwargs: Passed to BaseStorageBackend
        """
        super().__init__(backend_details, **kwargs)

        if not backend_details.get("root"):
            raise ValueError("Folder backend requires a 'root' directory")

        self.root = Path(backend_details["root"]).expanduser()
        if backend_details.get("create_root", True):
            self.root.mkdir(parents=True, exist_ok=True)

        self.logger.info("Folder storage backend initialized", root=str(self.root))

    @property
    def is_authenticated(self) -> bool:
        return self.root.is_dir()

    @property
    def is_ready_for_syncing(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.W_OK)

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.APPLE_CLOUD

    def _path_for(self, filename: str) -> Path:
        return self.root / filename

    def _exists(self, filename: str) -> bool:
        return self._path_for(filename).is_file()

    async def list_root_folder(self) -> List[FileDescriptor]:
        self.logger.debug("Listing folder", root=str(self.root))
        try:
            return await self._run_blocking(self._list_entries)
        except Exception as e:
            raise self.map_error(e) from e

    def _list_entries(self) -> List[FileDescriptor]:
        descriptors = []
        for entry in sorted(self.root.iterdir(), key=lambda p: p.name.casefold()):
            if entry.name.startswith(".") or not entry.is_file():
                continue

            stat = entry.stat()
            descriptors.append(
                FileDescriptor(
                    filename=entry.name,
                    state=FileState.NORMAL,
                    updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                    remote_locator=entry,
                )
            )
        return descriptors

    async def _perform_upload(self, descriptor: FileDescriptor, overwrite: bool) -> None:
        await self._run_blocking(self._copy_in, descriptor, overwrite)

    def _copy_in(self, descriptor: FileDescriptor, overwrite: bool) -> None:
        if descriptor.local_locator is None:
            raise NoContentError(descriptor.filename)

        source = Path(descriptor.local_locator)
        if not source.is_file():
            raise NoContentError(descriptor.filename)

        destination = self._path_for(descriptor.filename)
        if destination.exists() and not overwrite:
            raise FileAlreadyExistsError(descriptor.filename)

        shutil.copyfile(source, destination)
        timestamp = descriptor.updated_at.timestamp()
        os.utime(destination, (timestamp, timestamp))

    async def download(self, descriptor: FileDescriptor) -> bytes:
        try:
            return await self._run_blocking(self._path_for(descriptor.filename).read_bytes)
        except Exception as e:
            raise self.map_error(e, descriptor.filename) from e

    async def remove(self, descriptor: FileDescriptor) -> OperationResult:
        path = self._path_for(descriptor.filename)
        try:
            await self._run_blocking(lambda: path.unlink(missing_ok=True))
        except Exception as e:
            return OperationResult.failed([self.map_error(e, descriptor.filename)])

        self.logger.debug("Removed from folder", filename=descriptor.filename)
        return OperationResult.ok()

    async def rename(self, changes: List[RenameChange]) -> OperationResult:
        errors = self.validate_renames(changes, self._exists)
        if errors:
            self.logger.warning(
                "Rename batch rejected",
                changes=len(changes),
                errors=[str(e) for e in errors]
            )
            return OperationResult.failed(errors)

        for source, destination in changes:
            try:
                await self._run_blocking(
                    os.rename,
                    self._path_for(source.filename),
                    self._path_for(destination.filename)
                )
            except Exception as e:
                errors.append(self.map_error(e, source.filename))

        if errors:
            return OperationResult.failed(errors)
        return OperationResult.ok()
