"""Base storage backend interface and common functionality."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Type

from ..config.settings import get_settings
from ..errors import (
    BackendIOError,
    DifferentFileTypesError,
    FileAlreadyExistsError,
    NoContentError,
    RateLimitError,
    SyncError,
    as_sync_error,
)
from ..models import FileDescriptor, OperationResult, RenameChange, ServiceType
from ..utils.logging import get_logger

ErrorFactory = Callable[[BaseException, Optional[str]], SyncError]


class BaseStorageBackend(ABC):
    """Abstract base class for remote storage backends.

    A backend manages one flat remote folder. Implementations translate their
    native failures through ``ERROR_MAP`` so that only
    :class:`~filesync.errors.SyncError` values leave the backend.
    """

    # Checked in order, so list subclasses before their bases
    ERROR_MAP: Sequence[Tuple[Type[BaseException], ErrorFactory]] = ()

    def __init__(
        self,
        backend_details: Optional[Dict[str, Any]] = None,
        max_rate_limit_retries: Optional[int] = None,
        default_rate_limit_delay: Optional[float] = None,
        logger=None,
        **kwargs
    ):
        """Initialize the backend.

        Args:
            backend_details: Configuration specific to this backend
            max_rate_limit_retries: Cap on rate-limited upload retries; ``None``
                falls back to settings, where the default is unbounded
            default_rate_limit_delay: Delay used when the provider gives none
            logger: Optional structured logger
            **kwargs: Additional configuration parameters
        """
        sync_settings = get_settings().sync
        self.backend_details = backend_details or {}
        self.max_rate_limit_retries = (
            max_rate_limit_retries
            if max_rate_limit_retries is not None
            else sync_settings.max_rate_limit_retries
        )
        self.default_rate_limit_delay = (
            default_rate_limit_delay
            if default_rate_limit_delay is not None
            else sync_settings.default_rate_limit_delay
        )
        self.logger = logger or get_logger(self.__class__.__name__)

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether a session with the provider exists."""

    @property
    @abstractmethod
    def is_ready_for_syncing(self) -> bool:
        """Whether the backend can serve a sync pass right now."""

    @property
    @abstractmethod
    def service_type(self) -> ServiceType:
        """Provider this backend talks to."""

    @abstractmethod
    async def list_root_folder(self) -> List[FileDescriptor]:
        """List the root folder (flat, tombstones included where supported).

        Raises:
            SyncError: If the listing cannot be produced
        """

    @abstractmethod
    async def download(self, descriptor: FileDescriptor) -> bytes:
        """Fetch the bytes of a remote file.

        Raises:
            SyncError: ``no-content`` if the file is absent
        """

    @abstractmethod
    async def remove(self, descriptor: FileDescriptor) -> OperationResult:
        """Remove a remote file. Removing an absent file succeeds."""

    @abstractmethod
    async def rename(self, changes: List[RenameChange]) -> OperationResult:
        """Rename a batch of files, rejecting the whole batch if any change is invalid."""

    @abstractmethod
    async def _perform_upload(self, descriptor: FileDescriptor, overwrite: bool) -> None:
        """Send one upload to the provider.

        Raises:
            RateLimitError: When the provider asks to retry later
        """

    async def upload(self, descriptor: FileDescriptor, overwrite: bool = True) -> OperationResult:
        """Upload a file, re-issuing it for as long as the provider rate-limits.

        Args:
            descriptor: File to upload; its ``local_locator`` must point at the bytes
            overwrite: Replace an existing remote file instead of failing

        Returns:
            OperationResult for the upload
        """
        attempt = 0
        while True:
            try:
                await self._perform_upload(descriptor, overwrite)
            except RateLimitError as e:
                attempt += 1
                if self.max_rate_limit_retries is not None and attempt > self.max_rate_limit_retries:
                    self.logger.error(
                        "Upload still rate limited, giving up",
                        filename=descriptor.filename,
                        attempts=attempt
                    )
                    return OperationResult.failed([BackendIOError(e, filename=descriptor.filename)])

                delay = e.retry_after if e.retry_after is not None else self.default_rate_limit_delay
                self.logger.warning(
                    "Rate limited while uploading, retrying",
                    filename=descriptor.filename,
                    attempt=attempt,
                    retry_after=delay
                )
                await asyncio.sleep(delay)
                continue
            except Exception as e:
                error = self.map_error(e, descriptor.filename)
                self.logger.error("Upload failed", filename=descriptor.filename, error=str(error))
                return OperationResult.failed([error])

            if attempt:
                self.logger.info("Uploaded after retry", filename=descriptor.filename, attempts=attempt + 1)
            else:
                self.logger.debug("Uploaded", filename=descriptor.filename)
            return OperationResult.ok()

    def map_error(self, error: BaseException, filename: Optional[str] = None) -> SyncError:
        """Translate a native failure into the sync error taxonomy."""
        if isinstance(error, SyncError):
            return error

        for error_type, factory in self.ERROR_MAP:
            if isinstance(error, error_type):
                mapped = factory(error, filename)
                mapped.__cause__ = error
                return mapped

        return as_sync_error(error, filename)

    def validate_renames(
        self,
        changes: List[RenameChange],
        exists: Callable[[str], bool]
    ) -> List[SyncError]:
        """Check that every change in a batch is likely to succeed.

        Args:
            changes: The batch to check
            exists: Whether a filename is currently present on the remote

        Returns:
            All problems found; empty when the batch may be applied
        """
        errors: List[SyncError] = []
        moved: Set[str] = set()
        claimed: Set[str] = set()
        for source, destination in changes:
            if source.extension != destination.extension:
                errors.append(DifferentFileTypesError(source.filename, destination.filename))
                continue
            if not exists(source.filename) or source.filename in moved:
                errors.append(NoContentError(source.filename))
            if exists(destination.filename) or destination.filename in claimed:
                errors.append(FileAlreadyExistsError(destination.filename))
            moved.add(source.filename)
            claimed.add(destination.filename)
        return errors

    async def _run_blocking(self, func, *args):
        """Run a blocking call in the default thread pool."""
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def get_backend_info(self) -> Dict[str, Any]:
        """Describe this backend for logs and diagnostics."""
        return {
            "backend_type": self.__class__.__name__,
            "service_type": self.service_type.description,
            "authenticated": self.is_authenticated,
            "ready_for_syncing": self.is_ready_for_syncing,
        }
