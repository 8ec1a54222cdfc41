"""Local data handler backed by a plain directory and a JSON manifest.

The manifest remembers which files were in sync after the last pass. A file
on disk that the manifest does not list is new; a manifest entry whose file
has gone from disk is a local deletion waiting to propagate.
"""

import asyncio
import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..errors import BackendIOError, NoContentError, SyncError
from ..models import (
    FileDescriptor,
    FileState,
    Locator,
    OperationResult,
    RenameChange,
    sort_by_filename,
)
from ..utils.logging import get_logger
from .base import BaseLocalDataHandler

DEFAULT_MANIFEST_NAME = ".filesync-manifest.json"
MANIFEST_VERSION = 1


class DirectoryDataHandler(BaseLocalDataHandler):
    """Keeps synced files as siblings in one directory."""

    def __init__(
        self,
        directory: Union[str, Path],
        extensions: Optional[Iterable[str]] = None,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
        logger=None
    ):
        """Initialize directory handler.

        Args:
            directory: Where synced files live; created if missing
            extensions: Accepted extensions such as ``.txt``; all when omitted
            manifest_name: Filename of the manifest inside ``directory``
            logger: Optional structured logger
        """
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.extensions = (
            {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions}
            if extensions else None
        )
        self.manifest_path = self.directory / manifest_name
        self.logger = logger or get_logger(self.__class__.__name__)
        self._manifest_lock = threading.Lock()

    def path_for(self, filename: str) -> Path:
        return self.directory / filename

    def can_handle(self, filename: str) -> bool:
        if not filename or filename.startswith(".") or filename == self.manifest_path.name:
            return False
        if "/" in filename or "\\" in filename:
            return False
        if self.extensions is None:
            return True
        return Path(filename).suffix.lower() in self.extensions

    # Manifest

    def _read_manifest(self) -> Dict[str, dict]:
        if not self.manifest_path.exists():
            return {}
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BackendIOError(e, filename=self.manifest_path.name) from e
        return data.get("files", {})

    def _write_manifest(self, files: Dict[str, dict]) -> None:
        payload = {"version": MANIFEST_VERSION, "files": files}
        tmp_path = self.manifest_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.manifest_path)

    def manifest_entries(self) -> Dict[str, dict]:
        """Current manifest content keyed by filename."""
        with self._manifest_lock:
            return self._read_manifest()

    # Descriptors

    def _descriptor_for_path(self, path: Path, state: FileState) -> FileDescriptor:
        stat = path.stat()
        return FileDescriptor(
            filename=path.name,
            state=state,
            updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size_bytes=stat.st_size,
            local_locator=path,
        )

    def known_local_descriptors(self) -> List[FileDescriptor]:
        manifest = self.manifest_entries()
        descriptors = []

        for path in self.directory.iterdir():
            if not path.is_file() or not self.can_handle(path.name):
                continue
            state = FileState.NORMAL if path.name in manifest else FileState.NEW
            descriptors.append(self._descriptor_for_path(path, state))

        # Entries outside the current filter are left alone, not tombstoned
        for filename, entry in manifest.items():
            if not self.can_handle(filename) or self.path_for(filename).exists():
                continue
            descriptors.append(
                FileDescriptor(
                    filename=filename,
                    state=FileState.DELETED,
                    updated_at=datetime.fromisoformat(entry["updated_at"]),
                )
            )

        return sort_by_filename(descriptors)

    def prepare_local_data(self, descriptor: FileDescriptor) -> FileDescriptor:
        path = Path(descriptor.local_locator) if descriptor.local_locator else self.path_for(descriptor.filename)
        if path.is_file():
            return descriptor.evolve(local_locator=path, size_bytes=path.stat().st_size)
        return descriptor.evolve(local_locator=path)

    def save_locally(self, data: bytes, descriptor: FileDescriptor) -> FileDescriptor:
        path = self.path_for(descriptor.filename)
        path.write_bytes(data)

        timestamp = descriptor.updated_at.timestamp()
        os.utime(path, (timestamp, timestamp))

        self.logger.debug("Saved locally", filename=descriptor.filename, size_bytes=len(data))
        return descriptor.evolve(local_locator=path, size_bytes=len(data), is_dirty=True)

    def remove_local_data(self, locator: Optional[Locator], descriptor: FileDescriptor) -> None:
        path = Path(locator) if locator else self.path_for(descriptor.filename)
        path.unlink(missing_ok=True)

        with self._manifest_lock:
            files = self._read_manifest()
            if files.pop(descriptor.filename, None) is not None:
                self._write_manifest(files)

        self.logger.debug("Removed local data", filename=descriptor.filename)

    def identifier_for(self, descriptor: FileDescriptor) -> str:
        return descriptor.filename.split(".", 1)[0]

    # Commit

    def _commit_blocking(self, synced: List[FileDescriptor], is_full_sync: bool) -> int:
        entries = {}
        for descriptor in synced:
            if descriptor.state is not FileState.NORMAL:
                continue
            path = self.path_for(descriptor.filename)
            if not path.is_file():
                continue
            entries[descriptor.filename] = {
                "updated_at": datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat(),
                "size_bytes": path.stat().st_size,
            }

        with self._manifest_lock:
            files = self._read_manifest()
            if is_full_sync:
                files = {name: entry for name, entry in files.items() if not self.can_handle(name)}
            files.update(entries)
            self._write_manifest(files)
        return len(entries)

    async def commit(self, synced: List[FileDescriptor], is_full_sync: bool) -> OperationResult:
        loop = asyncio.get_running_loop()
        try:
            recorded = await loop.run_in_executor(None, self._commit_blocking, synced, is_full_sync)
        except SyncError as e:
            return OperationResult.failed([e])
        except OSError as e:
            return OperationResult.failed([BackendIOError(e, filename=self.manifest_path.name)])

        self.logger.info(
            "Committed synced files",
            recorded=recorded,
            offered=len(synced),
            full_sync=is_full_sync
        )
        return OperationResult.ok()

    # Renames

    def _rename_blocking(self, changes: List[RenameChange]) -> List[SyncError]:
        errors: List[SyncError] = []
        with self._manifest_lock:
            files = self._read_manifest()
            for source, destination in changes:
                source_path = self.path_for(source.filename)
                if not source_path.is_file():
                    errors.append(NoContentError(source.filename))
                    continue
                try:
                    os.replace(source_path, self.path_for(destination.filename))
                except OSError as e:
                    errors.append(BackendIOError(e, filename=source.filename))
                    continue

                entry = files.pop(source.filename, None)
                if entry is not None:
                    files[destination.filename] = entry
            self._write_manifest(files)
        return errors

    async def apply_renames(self, changes: List[RenameChange]) -> OperationResult:
        loop = asyncio.get_running_loop()
        try:
            errors = await loop.run_in_executor(None, self._rename_blocking, changes)
        except SyncError as e:
            errors = [e]
        except OSError as e:
            errors = [BackendIOError(e)]

        if errors:
            self.logger.warning("Local renames incomplete", errors=[str(e) for e in errors])
            return OperationResult.failed(errors)
        return OperationResult.ok()
