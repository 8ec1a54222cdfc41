"""Core reconciliation logic."""

from .comparison import SYNC_TOLERANCE, classify, compare
from .concurrency import ConcurrentExecutor
from .sync_service import SyncPhase, SyncService

__all__ = [
    "SYNC_TOLERANCE",
    "classify",
    "compare",
    "ConcurrentExecutor",
    "SyncPhase",
    "SyncService",
]
