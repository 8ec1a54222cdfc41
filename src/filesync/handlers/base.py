"""Local data handler interface."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..models import FileDescriptor, Locator, OperationResult, RenameChange, sort_by_filename


class BaseLocalDataHandler(ABC):
    """Bridge between the sync service and the application's local data store.

    The synchronous methods may touch the disk; the sync service calls them
    from a worker thread, so implementations must tolerate concurrent calls
    for different filenames.
    """

    @abstractmethod
    def can_handle(self, filename: str) -> bool:
        """Whether the application is interested in a remote file."""

    @abstractmethod
    def known_local_descriptors(self) -> List[FileDescriptor]:
        """Descriptors for every file the local store knows about, tombstones included."""

    @abstractmethod
    def prepare_local_data(self, descriptor: FileDescriptor) -> FileDescriptor:
        """Materialize the bytes of a file that is about to be uploaded.

        Returns:
            The descriptor with ``local_locator`` pointing at the bytes
        """

    @abstractmethod
    def save_locally(self, data: bytes, descriptor: FileDescriptor) -> FileDescriptor:
        """Persist downloaded bytes.

        Returns:
            The descriptor with ``local_locator`` set and ``is_dirty`` true
        """

    @abstractmethod
    def remove_local_data(self, locator: Optional[Locator], descriptor: FileDescriptor) -> None:
        """Remove local bytes (if any) and forget the file."""

    @abstractmethod
    def identifier_for(self, descriptor: FileDescriptor) -> str:
        """Identifier of the logical object a file belongs to."""

    def group_by_identifier(self, descriptors: List[FileDescriptor]) -> Dict[str, List[FileDescriptor]]:
        """Group descriptors by owner identifier, each group sorted by filename."""
        groups: Dict[str, List[FileDescriptor]] = {}
        for descriptor in descriptors:
            groups.setdefault(self.identifier_for(descriptor), []).append(descriptor)
        return {key: sort_by_filename(value) for key, value in groups.items()}

    @abstractmethod
    async def commit(self, synced: List[FileDescriptor], is_full_sync: bool) -> OperationResult:
        """Record the files that are now in sync.

        Args:
            synced: Files in sync after the pass, sorted by filename
            is_full_sync: Whether ``synced`` covers the whole remote folder
        """

    @abstractmethod
    async def apply_renames(self, changes: List[RenameChange]) -> OperationResult:
        """Update local records after the remote applied a rename batch."""
