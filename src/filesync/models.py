"""Data model shared by the comparison engine, the sync service and its collaborators."""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from .errors import SyncError

Locator = Union[str, Path]


class FileState(str, Enum):
    """Lifecycle state of a syncable file."""

    NEW = "new"
    """Created on this side and never synced (or appeared without history)"""

    NORMAL = "normal"
    """Known on both sides as of the last sync"""

    DELETED = "deleted"
    """Tombstone: the file was removed and the removal should propagate"""


class SyncStatus(str, Enum):
    """Outcome of comparing one remote descriptor against its local counterpart."""

    REMOTE_NEWER = "remote_newer"
    LOCAL_NEWER = "local_newer"
    SYNCED = "synced"
    UNDETERMINED = "undetermined"

    def inverted(self) -> "SyncStatus":
        """Return the status seen from the other side of the comparison."""
        if self is SyncStatus.REMOTE_NEWER:
            return SyncStatus.LOCAL_NEWER
        if self is SyncStatus.LOCAL_NEWER:
            return SyncStatus.REMOTE_NEWER
        return self


class ServiceType(IntEnum):
    """Storage providers. Values are persisted by clients and must not change."""

    NONE = 0
    APPLE_CLOUD = 1
    DROPBOX = 2

    @property
    def description(self) -> str:
        return {
            ServiceType.NONE: "Cloud Services Inactive",
            ServiceType.APPLE_CLOUD: "iCloud",
            ServiceType.DROPBOX: "Dropbox",
        }[self]


@dataclass(eq=False)
class FileDescriptor:
    """Sync metadata for one file in the flat namespace.

    Two descriptors are equal when their filenames are equal, whichever side
    they came from.
    """

    filename: str
    state: FileState
    updated_at: datetime
    is_dirty: bool = False
    size_bytes: Optional[int] = None
    local_locator: Optional[Locator] = None
    """Where the bytes live on this device"""

    remote_locator: Optional[Locator] = None
    """Where the bytes can be fetched from on the remote"""

    metadata: Optional[Dict[str, Any]] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileDescriptor):
            return NotImplemented
        return self.filename == other.filename

    def __hash__(self) -> int:
        return hash(self.filename)

    def evolve(self, **changes: Any) -> "FileDescriptor":
        """Return a copy of this descriptor with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix


def sort_by_filename(descriptors: List[FileDescriptor]) -> List[FileDescriptor]:
    """Sort descriptors by filename, case-insensitive ascending."""
    return sorted(descriptors, key=lambda d: (d.filename.casefold(), d.filename))


@dataclass
class ComparisonResult:
    """Partition of the remote and local descriptors into action buckets."""

    unchanged: List[FileDescriptor] = field(default_factory=list)
    to_upload: List[FileDescriptor] = field(default_factory=list)
    to_download: List[FileDescriptor] = field(default_factory=list)
    to_delete_locally: List[FileDescriptor] = field(default_factory=list)
    to_delete_on_remote: List[FileDescriptor] = field(default_factory=list)
    invalid: List[FileDescriptor] = field(default_factory=list)

    BUCKETS = (
        "unchanged",
        "to_upload",
        "to_download",
        "to_delete_locally",
        "to_delete_on_remote",
        "invalid",
    )

    @property
    def is_empty(self) -> bool:
        return all(len(getattr(self, name)) == 0 for name in self.BUCKETS)

    @property
    def expected_operation_count(self) -> int:
        """Number of operations a sync pass will dispatch for this result."""
        return (
            len(self.to_delete_locally)
            + len(self.to_delete_on_remote)
            + len(self.to_upload)
            + len(self.to_download)
        )

    def all_synced(self) -> List[FileDescriptor]:
        """Downloads, uploads and unchanged files, sorted by filename."""
        return sort_by_filename(self.to_download + self.to_upload + self.unchanged)

    def bucket_of(self, filename: str) -> List[str]:
        """Names of every bucket holding ``filename`` (one, for a well-formed result)."""
        return [
            name for name in self.BUCKETS
            if any(d.filename == filename for d in getattr(self, name))
        ]


class RenameChange(NamedTuple):
    """A single rename inside a batch."""

    source: FileDescriptor
    destination: FileDescriptor


@dataclass
class OperationResult:
    """Success flag plus the errors of a backend or handler operation."""

    success: bool
    errors: List[SyncError] = field(default_factory=list)

    @classmethod
    def ok(cls) -> "OperationResult":
        return cls(success=True)

    @classmethod
    def failed(cls, errors: List[SyncError]) -> "OperationResult":
        return cls(success=False, errors=list(errors))


@dataclass
class SyncOutcome:
    """Result of a sync, delete or rename request."""

    errors: List[SyncError] = field(default_factory=list)
    synced: List[FileDescriptor] = field(default_factory=list)
    comparison: Optional[ComparisonResult] = None

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


ProgressCallback = Callable[[str, Optional[str], int, int], None]
"""(status, details, expected_count, completed_count)"""

CompletionCallback = Callable[[bool, List[SyncError]], None]
