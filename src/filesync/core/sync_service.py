"""Sync service orchestrating reconciliation passes against a storage backend."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..backends.base import BaseStorageBackend
from ..config.settings import get_settings
from ..errors import InitializationFailedError, SyncError, UnexpectedError, as_sync_error
from ..handlers.base import BaseLocalDataHandler
from ..models import (
    CompletionCallback,
    ComparisonResult,
    FileDescriptor,
    FileState,
    OperationResult,
    ProgressCallback,
    RenameChange,
    ServiceType,
    SyncOutcome,
    sort_by_filename,
)
from ..utils.logging import get_logger, log_async_execution_time
from .comparison import compare
from .concurrency import ConcurrentExecutor

STATUS_PREPARING = "Preparing"
STATUS_SYNCING_FILE = "Syncing file"

TaskResult = Tuple[FileDescriptor, List[SyncError]]


class SyncPhase(str, Enum):
    """Where a sync pass currently is."""

    IDLE = "idle"
    PREPARING = "preparing"
    LISTING = "listing"
    COMPARING = "comparing"
    EXECUTING = "executing"
    COMMITTING = "committing"


class SyncService:
    """Reconciles the local data store with one remote folder.

    Only one sync pass runs at a time. A full or partial sync (or a rename)
    requested while a pass is active is ignored: the call returns ``None`` and
    its completion callback is never invoked.
    """

    def __init__(
        self,
        storage_backend: BaseStorageBackend,
        data_handler: BaseLocalDataHandler,
        max_concurrent_operations: Optional[int] = None,
        callback_loop: Optional[asyncio.AbstractEventLoop] = None,
        logger=None
    ):
        """Initialize sync service.

        Args:
            storage_backend: Remote folder to sync with
            data_handler: Owner of the local data
            max_concurrent_operations: Cap on file operations in flight
            callback_loop: Event loop on which progress and completion
                callbacks are delivered; inline when omitted
            logger: Optional structured logger
        """
        self.storage_backend = storage_backend
        self.data_handler = data_handler
        self.callback_loop = callback_loop
        self.logger = logger or get_logger(self.__class__.__name__)

        max_concurrent = max_concurrent_operations or get_settings().sync.max_concurrent_operations
        self.executor = ConcurrentExecutor(max_concurrent=max_concurrent, logger=self.logger)

        self._is_syncing = False
        self._phase = SyncPhase.IDLE

        self.logger.info(
            "Sync service initialized",
            max_concurrent=max_concurrent,
            **storage_backend.get_backend_info()
        )

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def service_type(self) -> ServiceType:
        return self.storage_backend.service_type

    def should_begin_full_sync(self) -> bool:
        """Whether the backend is in a state to serve a full sync."""
        return self.storage_backend.is_ready_for_syncing

    def _set_phase(self, phase: SyncPhase) -> None:
        self._phase = phase
        self.logger.debug("Sync phase changed", phase=phase.value)

    def _check_preconditions(self) -> Optional[SyncError]:
        if not self.storage_backend.is_authenticated:
            return InitializationFailedError("not authenticated with the storage service")
        if not self.storage_backend.is_ready_for_syncing:
            return InitializationFailedError("the storage service is not ready for syncing")
        return None

    # Callback delivery

    def _deliver(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        if self.callback_loop is not None:
            self.callback_loop.call_soon_threadsafe(callback, *args)
        else:
            callback(*args)

    def _finish(
        self,
        outcome: SyncOutcome,
        completion: Optional[CompletionCallback]
    ) -> SyncOutcome:
        self._deliver(completion, outcome.success, list(outcome.errors))
        return outcome

    async def _run_blocking(self, func, *args):
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    # Full and partial sync

    async def begin_full_sync(
        self,
        progress: Optional[ProgressCallback] = None,
        completion: Optional[CompletionCallback] = None
    ) -> Optional[SyncOutcome]:
        """Sync every file the local store knows about with the whole remote folder.

        Args:
            progress: Called with (status, details, expected, completed)
                after each file operation
            completion: Called with (success, errors) when the pass ends

        Returns:
            The outcome of the pass, or ``None`` if a pass was already running
        """
        if self._is_syncing:
            self.logger.info("Full sync requested while a sync is running, ignoring")
            return None

        return await self._sync_folder(None, None, progress, completion)

    async def sync(
        self,
        descriptors: List[FileDescriptor],
        completion: Optional[CompletionCallback] = None
    ) -> Optional[SyncOutcome]:
        """Sync a subset of files together with every remote file of the same owners.

        The owners are the identifiers the data handler derives from
        ``descriptors``; remote files belonging to other owners are left alone.
        """
        if self._is_syncing:
            self.logger.info("Partial sync requested while a sync is running, ignoring")
            return None

        identifiers = set(self.data_handler.group_by_identifier(descriptors).keys())
        return await self._sync_folder(list(descriptors), identifiers, None, completion)

    @log_async_execution_time
    async def _sync_folder(
        self,
        local: Optional[List[FileDescriptor]],
        identifier_filter: Optional[Set[str]],
        progress: Optional[ProgressCallback],
        completion: Optional[CompletionCallback]
    ) -> SyncOutcome:
        precondition_error = self._check_preconditions()
        if precondition_error is not None:
            self.logger.warning("Sync could not begin", error=str(precondition_error))
            return self._finish(SyncOutcome(errors=[precondition_error]), completion)

        self._is_syncing = True
        is_full_sync = identifier_filter is None
        try:
            self._deliver(progress, STATUS_PREPARING, None, 0, 0)
            outcome = await self._run_pass(local, identifier_filter, progress)
        finally:
            self._is_syncing = False
            self._set_phase(SyncPhase.IDLE)

        self.logger.info(
            "Sync pass finished",
            full_sync=is_full_sync,
            success=outcome.success,
            synced=len(outcome.synced),
            errors=len(outcome.errors)
        )
        return self._finish(outcome, completion)

    async def _run_pass(
        self,
        local: Optional[List[FileDescriptor]],
        identifier_filter: Optional[Set[str]],
        progress: Optional[ProgressCallback]
    ) -> SyncOutcome:
        self._set_phase(SyncPhase.PREPARING)
        if local is None:
            try:
                local = await self._run_blocking(self.data_handler.known_local_descriptors)
            except Exception as e:
                return SyncOutcome(errors=[as_sync_error(e)])

        self._set_phase(SyncPhase.LISTING)
        try:
            remote = await self.storage_backend.list_root_folder()
        except Exception as e:
            error = self.storage_backend.map_error(e)
            self.logger.error("Listing the remote folder failed", error=str(error))
            return SyncOutcome(errors=[error])

        if identifier_filter is not None:
            remote = [
                d for d in remote
                if self.data_handler.identifier_for(d) in identifier_filter
            ]

        self._set_phase(SyncPhase.COMPARING)
        comparison = compare(remote, local, self.data_handler.can_handle)
        self.logger.info(
            "Compared remote and local files",
            remote=len(remote),
            local=len(local),
            unchanged=len(comparison.unchanged),
            to_upload=len(comparison.to_upload),
            to_download=len(comparison.to_download),
            to_delete_locally=len(comparison.to_delete_locally),
            to_delete_on_remote=len(comparison.to_delete_on_remote),
            invalid=len(comparison.invalid)
        )

        self._set_phase(SyncPhase.EXECUTING)
        updated, errors = await self._execute(comparison, progress)

        synced = sort_by_filename([
            updated.get(d.filename, d)
            for d in comparison.to_download + comparison.to_upload + comparison.unchanged
        ])

        self._set_phase(SyncPhase.COMMITTING)
        errors.extend(await self._commit(synced, identifier_filter is None))

        return SyncOutcome(errors=errors, synced=synced, comparison=comparison)

    async def _execute(
        self,
        comparison: ComparisonResult,
        progress: Optional[ProgressCallback]
    ) -> Tuple[Dict[str, FileDescriptor], List[SyncError]]:
        """Run every bucket's operations concurrently and wait for all of them."""
        expected = comparison.expected_operation_count
        completed = 0

        def track(
            action: str,
            operation: Callable[[FileDescriptor], Awaitable[TaskResult]],
            descriptor: FileDescriptor
        ) -> Callable[[], Awaitable[TaskResult]]:
            async def run() -> TaskResult:
                nonlocal completed
                result = await operation(descriptor)
                completed += 1
                outcome = "failed" if result[1] else "succeeded"
                self._deliver(
                    progress,
                    STATUS_SYNCING_FILE,
                    f"{action} {descriptor.filename} {outcome}",
                    expected,
                    completed
                )
                return result
            return run

        tasks = (
            [track("Delete", self._delete_locally, d) for d in comparison.to_delete_locally]
            + [track("Upload", self._upload, d) for d in comparison.to_upload]
            + [track("Download", self._download, d) for d in comparison.to_download]
            + [track("Delete", self._delete_on_remote, d) for d in comparison.to_delete_on_remote]
        )

        results = await self.executor.execute_batch(tasks)

        updated: Dict[str, FileDescriptor] = {}
        errors: List[SyncError] = []
        for descriptor, task_errors in results:
            updated[descriptor.filename] = descriptor
            errors.extend(task_errors)
        return updated, errors

    async def _commit(self, synced: List[FileDescriptor], is_full_sync: bool) -> List[SyncError]:
        try:
            result = await self.data_handler.commit(synced, is_full_sync)
        except Exception as e:
            return [as_sync_error(e)]
        return _errors_of(result, "Committing synced files failed")

    # Per-file operations. Each returns the updated descriptor and its own errors.

    async def _delete_locally(self, descriptor: FileDescriptor) -> TaskResult:
        try:
            await self._run_blocking(
                self.data_handler.remove_local_data,
                descriptor.local_locator,
                descriptor
            )
        except Exception as e:
            self.logger.error("Local delete failed", filename=descriptor.filename, error=str(e))
            return descriptor, [as_sync_error(e, descriptor.filename)]
        return descriptor.evolve(state=FileState.DELETED), []

    async def _upload(self, descriptor: FileDescriptor) -> TaskResult:
        try:
            prepared = await self._run_blocking(self.data_handler.prepare_local_data, descriptor)
            result = await self.storage_backend.upload(prepared, overwrite=True)
        except Exception as e:
            return descriptor, [self.storage_backend.map_error(e, descriptor.filename)]

        errors = _errors_of(result, f"Upload of {descriptor.filename} failed", descriptor.filename)
        if errors:
            return prepared, errors
        return prepared.evolve(state=FileState.NORMAL), []

    async def _download(self, descriptor: FileDescriptor) -> TaskResult:
        try:
            data = await self.storage_backend.download(descriptor)
        except Exception as e:
            error = self.storage_backend.map_error(e, descriptor.filename)
            self.logger.error("Download failed", filename=descriptor.filename, error=str(error))
            return descriptor, [error]

        try:
            saved = await self._run_blocking(self.data_handler.save_locally, data, descriptor)
        except Exception as e:
            self.logger.error("Saving download failed", filename=descriptor.filename, error=str(e))
            return descriptor, [as_sync_error(e, descriptor.filename)]

        assert saved.local_locator is not None, (
            f"{type(self.data_handler).__name__}.save_locally did not set a local locator"
        )
        return saved.evolve(state=FileState.NORMAL, is_dirty=True), []

    async def _delete_on_remote(self, descriptor: FileDescriptor) -> TaskResult:
        try:
            result = await self.storage_backend.remove(descriptor)
        except Exception as e:
            return descriptor, [self.storage_backend.map_error(e, descriptor.filename)]

        errors = _errors_of(result, f"Remote delete of {descriptor.filename} failed", descriptor.filename)
        if errors:
            return descriptor, errors

        try:
            await self._run_blocking(
                self.data_handler.remove_local_data,
                descriptor.local_locator,
                descriptor
            )
        except Exception as e:
            return descriptor, [as_sync_error(e, descriptor.filename)]
        return descriptor.evolve(state=FileState.DELETED), []

    # Fast delete and rename

    async def delete(
        self,
        descriptors: List[FileDescriptor],
        completion: Optional[CompletionCallback] = None
    ) -> SyncOutcome:
        """Remove files from the remote right away, dropping local copies as they go.

        Skips the comparison step and runs even while a sync pass is active.
        """
        precondition_error = self._check_preconditions()
        if precondition_error is not None:
            return self._finish(SyncOutcome(errors=[precondition_error]), completion)

        results = await self.executor.execute_batch(
            [lambda d=d: self._delete_on_remote(d) for d in descriptors]
        )

        errors: List[SyncError] = []
        for _, task_errors in results:
            errors.extend(task_errors)

        self.logger.info("Fast delete finished", files=len(descriptors), errors=len(errors))
        return self._finish(SyncOutcome(errors=errors), completion)

    async def rename(
        self,
        changes: List[RenameChange],
        completion: Optional[CompletionCallback] = None
    ) -> Optional[SyncOutcome]:
        """Rename a batch of remote files, then let the data handler follow.

        The backend validates the whole batch first; if it rejects it the
        data handler is never called.
        """
        if self._is_syncing:
            self.logger.info("Rename requested while a sync is running, ignoring")
            return None

        precondition_error = self._check_preconditions()
        if precondition_error is not None:
            return self._finish(SyncOutcome(errors=[precondition_error]), completion)

        changes = [RenameChange(*change) for change in changes]
        try:
            result = await self.storage_backend.rename(changes)
        except Exception as e:
            result = OperationResult.failed([self.storage_backend.map_error(e)])

        errors = _errors_of(result, "Remote rename failed")
        if errors:
            self.logger.warning("Rename rejected by storage backend", errors=[str(e) for e in errors])
            return self._finish(SyncOutcome(errors=errors), completion)

        try:
            result = await self.data_handler.apply_renames(changes)
        except Exception as e:
            result = OperationResult.failed([as_sync_error(e)])

        errors = _errors_of(result, "Applying renames locally failed")
        return self._finish(SyncOutcome(errors=errors), completion)


def _errors_of(result: OperationResult, details: str, filename: Optional[str] = None) -> List[SyncError]:
    """Errors of an operation result; a failure without errors becomes an unexpected error."""
    if result.errors:
        return list(result.errors)
    if not result.success:
        return [UnexpectedError(details, filename=filename)]
    return []
