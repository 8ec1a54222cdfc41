"""Error taxonomy for sync operations.

Every failure that reaches a caller of :class:`~filesync.core.SyncService`
is a :class:`SyncError` carrying one of the stable :class:`SyncErrorCode`
values. Backend-native failures are translated at the backend boundary.
"""

from enum import Enum
from typing import Optional


class SyncErrorCode(str, Enum):
    """Stable identifiers for sync failures."""

    INITIALIZATION_FAILED = "initialization-failed"
    NOT_AUTHENTICATED = "not-authenticated"
    FILE_ALREADY_EXISTS = "file-already-exists"
    DIFFERENT_FILE_TYPES = "different-file-types"
    NO_CONTENT = "no-content"
    BACKEND_IO_ERROR = "backend-io-error"
    UNEXPECTED = "unexpected"


class SyncError(Exception):
    """Base exception for sync errors."""

    code: SyncErrorCode = SyncErrorCode.UNEXPECTED

    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value!r}, message={str(self)!r})"


class InitializationFailedError(SyncError):
    """Raised when the preconditions for syncing are not met."""

    code = SyncErrorCode.INITIALIZATION_FAILED

    def __init__(self, details: str):
        super().__init__(f"Sync could not begin: {details}")
        self.details = details


class NotAuthenticatedError(SyncError):
    """Raised when the storage backend has no authenticated session."""

    code = SyncErrorCode.NOT_AUTHENTICATED

    def __init__(self, message: str = "Not authenticated with the storage backend"):
        super().__init__(message)


class FileAlreadyExistsError(SyncError):
    """Raised when an operation expects no file at a location but one exists."""

    code = SyncErrorCode.FILE_ALREADY_EXISTS

    def __init__(self, filename: str):
        super().__init__(f"File already exists: {filename}", filename=filename)


class DifferentFileTypesError(SyncError):
    """Raised when a rename would change a file's extension."""

    code = SyncErrorCode.DIFFERENT_FILE_TYPES

    def __init__(self, source: str, destination: str):
        super().__init__(
            f"Cannot rename {source} to {destination}: file types differ",
            filename=source
        )
        self.destination = destination


class NoContentError(SyncError):
    """Raised when expected data is missing locally or remotely."""

    code = SyncErrorCode.NO_CONTENT

    def __init__(self, filename: str):
        super().__init__(f"No content for file: {filename}", filename=filename)


class BackendIOError(SyncError):
    """Wraps an underlying storage or filesystem failure."""

    code = SyncErrorCode.BACKEND_IO_ERROR

    def __init__(self, error: BaseException, filename: Optional[str] = None):
        prefix = f"{filename}: " if filename else ""
        super().__init__(f"{prefix}{error}", filename=filename)
        self.error = error


class UnexpectedError(SyncError):
    """For situations that should not happen."""

    code = SyncErrorCode.UNEXPECTED

    def __init__(self, details: str, filename: Optional[str] = None):
        super().__init__(details, filename=filename)
        self.details = details


class RateLimitError(Exception):
    """Raised by a backend when the provider asks it to slow down.

    Handled inside :meth:`BaseStorageBackend.upload`; never surfaced to the
    sync service.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def as_sync_error(error: BaseException, filename: Optional[str] = None) -> SyncError:
    """Return ``error`` unchanged if it is a SyncError, else wrap it."""
    if isinstance(error, SyncError):
        return error
    wrapped = BackendIOError(error, filename=filename)
    wrapped.__cause__ = error
    return wrapped
