"""Reconcile a local directory with a remote storage folder."""

from .errors import SyncError, SyncErrorCode
from .models import (
    ComparisonResult,
    FileDescriptor,
    FileState,
    OperationResult,
    RenameChange,
    ServiceType,
    SyncOutcome,
    SyncStatus,
)
from .core import SyncPhase, SyncService, classify, compare

__version__ = "0.1.0"

__all__ = [
    "SyncError",
    "SyncErrorCode",
    "ComparisonResult",
    "FileDescriptor",
    "FileState",
    "OperationResult",
    "RenameChange",
    "ServiceType",
    "SyncOutcome",
    "SyncStatus",
    "SyncPhase",
    "SyncService",
    "classify",
    "compare",
]
