"""Tests for the comparison engine."""

import copy
from datetime import datetime, timedelta, timezone

import pytest

from filesync.core.comparison import SYNC_TOLERANCE, classify, compare
from filesync.models import ComparisonResult, FileDescriptor, FileState, SyncStatus

BASE = datetime(2021, 2, 17, 12, 0, tzinfo=timezone.utc)
NEWER = BASE + timedelta(hours=1)
OLDER = BASE - timedelta(hours=1)


def info(filename, state=FileState.NORMAL, updated_at=BASE, **kwargs):
    return FileDescriptor(filename=filename, state=state, updated_at=updated_at, **kwargs)


def can_handle_all(filename):
    return True


def names(descriptors):
    return sorted(d.filename for d in descriptors)


def reference_fixture():
    """Nine files covering every classification path."""
    local = [
        info("B.txt", FileState.NEW, local_locator="/local/B.txt"),
        info("C.txt", FileState.NORMAL, NEWER, local_locator="/local/C.txt"),
        info("D.txt", FileState.NORMAL, OLDER, local_locator="/local/D.txt"),
        info("E.txt", FileState.DELETED),
        info("F.txt", FileState.NORMAL, local_locator="/local/F.txt"),
        info("G.txt", FileState.NORMAL, local_locator="/local/G.txt"),
        info("H.txt", FileState.NEW, local_locator="/local/H.txt"),
        info("I.txt", FileState.NEW, OLDER, local_locator="/local/I.txt"),
    ]
    remote = [
        info("A.txt", remote_locator="remote:A.txt"),
        info("C.txt", updated_at=OLDER, remote_locator="remote:C.txt"),
        info("D.txt", updated_at=NEWER, remote_locator="remote:D.txt"),
        info("E.txt", remote_locator="remote:E.txt"),
        info("G.txt", remote_locator="remote:G.txt"),
        info("H.txt", remote_locator="remote:H.txt"),
        info("I.txt", updated_at=NEWER, remote_locator="remote:I.txt"),
    ]
    return remote, local


class TestClassify:
    """Test pairwise sync status."""

    def test_no_local_counterpart_is_remote_newer(self):
        """Test a remote file with no local match."""
        assert classify(info("a.txt"), None) is SyncStatus.REMOTE_NEWER

    def test_equal_timestamps_are_synced(self):
        """Test identical timestamps."""
        assert classify(info("a.txt"), info("a.txt")) is SyncStatus.SYNCED

    def test_tolerance_is_inclusive(self):
        """Test a one second difference still counts as synced."""
        remote = info("a.txt", updated_at=BASE + SYNC_TOLERANCE)
        local = info("a.txt", updated_at=BASE)

        assert classify(remote, local) is SyncStatus.SYNCED
        assert classify(local, remote) is SyncStatus.SYNCED

    def test_just_past_tolerance_is_ordered_by_sign(self):
        """Test differences past the tolerance pick a side."""
        later = info("a.txt", updated_at=BASE + timedelta(seconds=1, microseconds=1))
        earlier = info("a.txt", updated_at=BASE)

        assert classify(later, earlier) is SyncStatus.REMOTE_NEWER
        assert classify(earlier, later) is SyncStatus.LOCAL_NEWER

    @pytest.mark.parametrize("offset", [
        timedelta(seconds=-5),
        timedelta(seconds=-1),
        timedelta(0),
        timedelta(milliseconds=999),
        timedelta(seconds=2),
        timedelta(days=3),
    ])
    def test_role_swap_inverts_status(self, offset):
        """Test swapping sides inverts the status."""
        a = info("a.txt", updated_at=BASE + offset)
        b = info("a.txt", updated_at=BASE)

        assert classify(a, b) is classify(b, a).inverted()

    def test_different_filenames_are_undetermined(self):
        """Test descriptors of different files."""
        assert classify(info("a.txt"), info("b.txt")) is SyncStatus.UNDETERMINED


class TestCompare:
    """Test partitioning remote and local descriptors."""

    def test_reference_fixture(self):
        """Test the nine-file fixture lands in the expected buckets."""
        remote, local = reference_fixture()

        result = compare(remote, local, can_handle_all)

        assert names(result.unchanged) == ["G.txt"]
        assert names(result.to_delete_locally) == ["F.txt"]
        assert names(result.to_delete_on_remote) == ["E.txt"]
        assert names(result.to_upload) == ["B.txt", "C.txt", "H.txt"]
        assert names(result.to_download) == ["A.txt", "D.txt", "I.txt"]
        assert result.invalid == []
        assert result.expected_operation_count == 8

    def test_every_filename_lands_in_exactly_one_bucket(self):
        """Test buckets partition the filenames."""
        remote, local = reference_fixture()
        remote.append(info("ignored.bin"))
        remote.append(info("gone.txt", FileState.DELETED))
        local.append(info("orphan.txt", FileState.DELETED))

        result = compare(remote, local, lambda name: not name.endswith(".bin"))

        all_names = {d.filename for d in remote} | {d.filename for d in local}
        for filename in all_names:
            assert len(result.bucket_of(filename)) == 1, filename

    def test_sides_picked_for_each_bucket(self):
        """Test which side's descriptor each bucket holds."""
        remote, local = reference_fixture()

        result = compare(remote, local, can_handle_all)

        # Downloads come from the remote listing, uploads and unchanged from local
        assert all(d.remote_locator is not None for d in result.to_download)
        assert all(d.local_locator is not None for d in result.to_upload)
        assert all(d.local_locator is not None for d in result.unchanged)

    def test_inputs_are_not_mutated(self):
        """Test compare leaves its inputs untouched."""
        remote, local = reference_fixture()
        remote.append(info("T.txt", FileState.DELETED))
        local.append(info("T.txt", local_locator="/local/T.txt"))
        snapshot = copy.deepcopy((remote, local))

        compare(remote, local, can_handle_all)

        for before, after in zip(snapshot[0] + snapshot[1], remote + local):
            assert before.__dict__ == after.__dict__

    def test_is_idempotent(self):
        """Test comparing twice gives the same result."""
        remote, local = reference_fixture()

        first = compare(remote, local, can_handle_all)
        second = compare(remote, local, can_handle_all)

        for bucket in ComparisonResult.BUCKETS:
            assert [d.__dict__ for d in getattr(first, bucket)] == \
                [d.__dict__ for d in getattr(second, bucket)]

    def test_remote_tombstone_carries_local_locator(self):
        """Test remote tombstones pick up the local locator."""
        remote = [info("song.txt", FileState.DELETED, remote_locator="remote:song.txt")]
        local = [info("song.txt", FileState.NORMAL, local_locator="/local/song.txt")]

        result = compare(remote, local, can_handle_all)

        assert names(result.to_delete_locally) == ["song.txt"]
        assert result.to_delete_locally[0].local_locator == "/local/song.txt"
        assert result.to_delete_locally[0].state is FileState.DELETED
        assert result.to_delete_on_remote == []
        assert result.to_upload == [] and result.unchanged == []

    def test_remote_tombstone_without_local_file(self):
        """Test a remote tombstone with nothing local."""
        remote = [info("song.txt", FileState.DELETED)]

        result = compare(remote, [], can_handle_all)

        assert names(result.to_delete_locally) == ["song.txt"]
        assert result.to_delete_locally[0].local_locator is None

    def test_local_tombstone_carries_remote_locator(self):
        """Test local tombstones pick up the remote locator."""
        remote = [info("song.txt", updated_at=NEWER, remote_locator="remote:song.txt")]
        local = [info("song.txt", FileState.DELETED)]

        result = compare(remote, local, can_handle_all)

        assert names(result.to_delete_on_remote) == ["song.txt"]
        assert result.to_delete_on_remote[0].remote_locator == "remote:song.txt"
        assert result.to_download == []

    def test_invalid_remote_entries_are_filtered_first(self):
        """Test unhandled remote entries are set aside."""
        remote = [
            info("notes.txt"),
            info("photo.raw"),
            info("old.raw", FileState.DELETED),
        ]

        result = compare(remote, [], lambda name: name.endswith(".txt"))

        assert names(result.invalid) == ["old.raw", "photo.raw"]
        assert names(result.to_download) == ["notes.txt"]
        assert result.to_delete_locally == []

    def test_local_matching_only_invalid_remote_is_unmatched(self):
        """Test a local file whose remote twin is unhandled."""
        remote = [info("photo.raw")]
        local = [info("photo.raw", FileState.NEW)]

        result = compare(remote, local, lambda name: not name.endswith(".raw"))

        assert names(result.invalid) == ["photo.raw"]
        assert names(result.to_upload) == ["photo.raw"]

    def test_local_tombstone_never_targets_invalid_remote(self):
        """Test a local deletion of a filtered-out file leaves the remote copy alone."""
        remote = [info("notes.md", remote_locator="notes.md"), info("a.txt")]
        local = [info("notes.md", FileState.DELETED), info("a.txt")]

        result = compare(remote, local, lambda name: name.endswith(".txt"))

        assert names(result.invalid) == ["notes.md"]
        assert result.to_delete_on_remote == []
        assert result.to_delete_locally == []
        assert names(result.unchanged) == ["a.txt"]

    def test_local_tombstone_is_not_linked_to_invalid_entry(self):
        """Test cross-linking only looks at remote entries that can be handled."""
        remote = [info("old.raw", remote_locator="remote/old.raw")]
        local = [info("old.txt", FileState.DELETED)]

        result = compare(remote, local, lambda name: name.endswith(".txt"))

        assert names(result.to_delete_on_remote) == ["old.txt"]
        assert result.to_delete_on_remote[0].remote_locator is None

    def test_unknown_local_files(self):
        """Test local files the remote has never seen."""
        local = [info("fresh.txt", FileState.NEW), info("stale.txt", FileState.NORMAL)]

        result = compare([], local, can_handle_all)

        assert names(result.to_upload) == ["fresh.txt"]
        assert names(result.to_delete_locally) == ["stale.txt"]

    def test_duplicate_remote_names_are_deduplicated_in_sets(self):
        """Test duplicate remote names collapse in sets."""
        remote = [info("a.txt"), info("a.txt", updated_at=NEWER)]

        result = compare(remote, [], can_handle_all)

        assert len(result.to_download) == 1

    def test_empty_inputs(self):
        """Test comparing nothing."""
        result = compare([], [], can_handle_all)

        assert result.is_empty
        assert result.expected_operation_count == 0
