"""Comparison of remote and local file descriptors.

``compare`` partitions the union of remote and local filenames into the six
buckets of :class:`~filesync.models.ComparisonResult`. It is pure: inputs are
never mutated, and cross-linked locators are carried on evolved copies.
"""

from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..models import ComparisonResult, FileDescriptor, FileState, SyncStatus

# Some backends cannot keep sub-second or client-assigned modification times,
# so timestamps this close together count as the same version.
SYNC_TOLERANCE = timedelta(seconds=1)


def classify(remote: FileDescriptor, local: Optional[FileDescriptor]) -> SyncStatus:
    """Compare a remote descriptor with its local counterpart.

    Args:
        remote: Descriptor as listed by the storage backend
        local: Matching local descriptor, if there is one

    Returns:
        ``REMOTE_NEWER`` when there is no local file or the remote timestamp is
        more than a second ahead, ``LOCAL_NEWER`` when it is more than a second
        behind, ``SYNCED`` within the tolerance (inclusive) and ``UNDETERMINED``
        when the filenames differ.
    """
    if local is None:
        return SyncStatus.REMOTE_NEWER

    if remote.filename != local.filename:
        return SyncStatus.UNDETERMINED

    delta = remote.updated_at - local.updated_at
    if abs(delta) <= SYNC_TOLERANCE:
        return SyncStatus.SYNCED
    if delta > timedelta(0):
        return SyncStatus.REMOTE_NEWER
    return SyncStatus.LOCAL_NEWER


class _UniqueBucket:
    """Insertion-ordered collection deduplicated by filename."""

    def __init__(self):
        self._items: Dict[str, FileDescriptor] = {}

    def add(self, descriptor: FileDescriptor) -> None:
        self._items.setdefault(descriptor.filename, descriptor)

    def to_list(self) -> List[FileDescriptor]:
        return list(self._items.values())


def _index(descriptors: Iterable[FileDescriptor]) -> Dict[str, FileDescriptor]:
    index: Dict[str, FileDescriptor] = {}
    for descriptor in descriptors:
        index.setdefault(descriptor.filename, descriptor)
    return index


def compare(
    remote: List[FileDescriptor],
    local: List[FileDescriptor],
    can_handle: Callable[[str], bool]
) -> ComparisonResult:
    """Classify remote and local descriptors into action buckets.

    Args:
        remote: Flat listing from the storage backend, tombstones included
        local: Descriptors known to the local data handler
        can_handle: Relevance filter for remote filenames

    Returns:
        ComparisonResult in which every filename appears in exactly one bucket
    """
    result = ComparisonResult()
    local_by_name = _index(local)
    remote_by_name = _index(d for d in remote if can_handle(d.filename))

    # Local descriptors already accounted for by a remote tombstone
    consumed: set = set()
    invalid_names: set = set()

    remote_to_compare: List[FileDescriptor] = []
    for info in remote:
        if not can_handle(info.filename):
            result.invalid.append(info)
            invalid_names.add(info.filename)
            continue

        if info.state is FileState.DELETED:
            local_info = local_by_name.get(info.filename)
            if local_info is not None:
                info = info.evolve(local_locator=local_info.local_locator)
                consumed.add(info.filename)
            result.to_delete_locally.append(info)
            continue

        remote_to_compare.append(info)

    for info in local:
        if info.state is not FileState.DELETED or info.filename in consumed:
            continue
        # Invalid remote entries are never acted on
        if info.filename in invalid_names:
            continue
        remote_info = remote_by_name.get(info.filename)
        if remote_info is not None:
            info = info.evolve(remote_locator=remote_info.remote_locator)
        result.to_delete_on_remote.append(info)

    to_upload = _UniqueBucket()
    to_download = _UniqueBucket()
    unchanged = _UniqueBucket()
    compared: set = set()

    for info in remote_to_compare:
        compared.add(info.filename)
        local_info = local_by_name.get(info.filename)

        if local_info is not None and (
            local_info.state is FileState.DELETED or info.filename in consumed
        ):
            continue

        status = classify(info, local_info)
        if status is SyncStatus.REMOTE_NEWER:
            to_download.add(info)
        elif status is SyncStatus.LOCAL_NEWER:
            to_upload.add(local_info)
        elif status is SyncStatus.SYNCED:
            # A brand-new local file that matches the remote still wins the tie
            if local_info.state is FileState.NEW:
                to_upload.add(local_info)
            else:
                unchanged.add(local_info)

    # Local files the remote knows nothing about
    for info in local:
        if (
            info.filename in compared
            or info.filename in consumed
            or info.state is FileState.DELETED
        ):
            continue
        if info.state is FileState.NORMAL:
            result.to_delete_locally.append(info)
        else:
            to_upload.add(info)

    result.to_upload = to_upload.to_list()
    result.to_download = to_download.to_list()
    result.unchanged = unchanged.to_list()
    return result
