"""Exception taxonomy shared by the stores, the remote client and the sync layer.

Transient failures (network, 5xx) are retried by the polling loop or the next
flush trigger. Storage failures are caught at the store boundary and turned
into logged no-ops or `Err` values. Only the two user-facing states ("download
failed, try again" and "offline copy unavailable") ever reach the UI as text.
"""

from __future__ import annotations

import errno


class ShelfSyncError(Exception):
    """Base class for every error raised by shelfsync."""


class RemoteServiceError(ShelfSyncError):
    """The remote service answered with a non-success HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message

    @property
    def is_transient(self) -> bool:
        """5xx and 429 are worth retrying; other 4xx are not."""
        return self.status >= 500 or self.status == 429


class NetworkUnavailableError(ShelfSyncError):
    """The request never reached the service (DNS, refused, timeout, offline)."""


class AuthTokenMissingError(ShelfSyncError):
    """No bearer token is available for an authenticated request."""


class StorageError(ShelfSyncError):
    """A local read or write failed."""

    def __init__(self, message: str, *, disk_full: bool = False) -> None:
        super().__init__(message)
        self.disk_full = disk_full

    @classmethod
    def from_os_error(cls, action: str, exc: OSError) -> StorageError:
        return cls(f"{action}: {exc}", disk_full=exc.errno == errno.ENOSPC)


class QuotaExceededError(ShelfSyncError):
    """An upload would exceed the single-file or total storage limit."""


class OfflineCopyUnavailableError(ShelfSyncError):
    """A read was requested while offline and no valid cached copy exists."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Offline copy unavailable for document {document_id}")
        self.document_id = document_id


__all__ = [
    "ShelfSyncError",
    "RemoteServiceError",
    "NetworkUnavailableError",
    "AuthTokenMissingError",
    "StorageError",
    "QuotaExceededError",
    "OfflineCopyUnavailableError",
]
