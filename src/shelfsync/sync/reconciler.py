"""
Reconciler: push locally queued user intent to the remote service.

Two independent durable queues feed it:

- **Reading positions**: saved locally first (`record_position`) and removed
  only after the server confirmed the write, and only if no newer position was
  saved in the meantime.
- **Uploads**: files the user added while offline (or while the server was
  unreachable). Each flush re-checks the single-file and total storage limits
  against the current remote listing, then uploads oldest-first and stops at
  the first failure so queue order is preserved.

Flushes are best-effort: they never raise, report what happened as a
`FlushReport`, and a trigger that arrives while a flush of the same queue is
still running is skipped rather than queued.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from shelfsync.core.contracts.document import RemoteDocument
from shelfsync.core.contracts.pending import DEFAULT_UPLOAD_NAME, PendingPositionEntry
from shelfsync.core.errors import (
    NetworkUnavailableError,
    QuotaExceededError,
    RemoteServiceError,
    ShelfSyncError,
    StorageError,
)
from shelfsync.core.result import Result, err, ok
from shelfsync.core.settings import SyncConfig, get_logger
from shelfsync.remote.client import guess_mime_type
from shelfsync.remote.interfaces import DocumentService, NetworkMonitor, ReadingPositionService
from shelfsync.storage.documents_index import DocumentsIndexStore
from shelfsync.storage.positions import PendingPositionQueue
from shelfsync.storage.uploads import FileAccess, PendingUploadQueue, read_external

from .events import EventChannel

logger = get_logger(__name__)

MESSAGE_UPLOAD_FAILED = "Failed to upload document."


@dataclass(frozen=True)
class FlushReport:
    """Outcome of one flush of one queue."""

    queue: str
    attempted: int = 0
    completed: int = 0
    dropped: int = 0
    remaining: int = 0
    skipped: bool = False
    error: str | None = None

    @property
    def stopped_early(self) -> bool:
        return self.error is not None


class UploadOutcome(str, Enum):
    UPLOADED = "uploaded"
    QUEUED = "queued"


class SyncReconciler:
    """Flushes the pending position and upload queues."""

    def __init__(
        self,
        documents: DocumentService,
        positions_service: ReadingPositionService,
        uploads: PendingUploadQueue,
        positions: PendingPositionQueue,
        network: NetworkMonitor,
        config: SyncConfig | None = None,
        index: DocumentsIndexStore | None = None,
    ) -> None:
        self.documents = documents
        self.positions_service = positions_service
        self.uploads = uploads
        self.positions = positions
        self.network = network
        self.config = config or SyncConfig()
        self.index = index
        self.documents_changed: EventChannel[RemoteDocument] = EventChannel("documents-changed")
        self._upload_lock = asyncio.Lock()
        self._position_lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Uploads
    # ------------------------------------------------------------------ #

    async def flush_uploads(self) -> FlushReport:
        if self._upload_lock.locked():
            logger.debug("Upload flush already running; skipping trigger")
            return FlushReport(queue="uploads", skipped=True, remaining=len(self.uploads))

        async with self._upload_lock:
            if not self.network.is_online:
                return FlushReport(queue="uploads", skipped=True, remaining=len(self.uploads))

            attempted = completed = dropped = 0
            error: str | None = None
            for entry in self.uploads.pending():
                try:
                    data = self.uploads.load_data(entry.id)
                except StorageError as exc:
                    if not isinstance(exc.__cause__, FileNotFoundError):
                        logger.warning("Upload flush stopped at %s: %s", entry.id, exc)
                        error = _describe(exc)
                        break
                    logger.warning("Dropping queued upload %s with no payload: %s", entry.id, exc)
                    self.uploads.remove(entry.id)
                    dropped += 1
                    continue

                attempted += 1
                try:
                    document = await self._upload_checked(data, entry.file_name)
                except (ShelfSyncError, ValidationError) as exc:
                    logger.info("Upload flush stopped at %s: %s", entry.id, exc)
                    error = _describe(exc)
                    break

                self.uploads.remove(entry.id)
                completed += 1
                logger.info("Uploaded queued file %s as document %s", entry.file_name, document.id)
                self.documents_changed.emit(document)

            return FlushReport(
                queue="uploads",
                attempted=attempted,
                completed=completed,
                dropped=dropped,
                remaining=len(self.uploads),
                error=error,
            )

    async def upload(self, data: bytes, file_name: str) -> Result[UploadOutcome, str]:
        """Upload now, or queue the file when the service cannot be reached.

        Limit violations and non-retryable server answers come back as `Err`
        with a user-facing message; nothing is queued for those.
        """
        name = file_name.strip() or DEFAULT_UPLOAD_NAME
        if not self.network.is_online:
            if len(data) > self.config.max_storage_bytes:
                return err(_too_large(self.config.max_storage_mb))
            return self._enqueue(data, name)

        try:
            document = await self._upload_checked(data, name)
        except QuotaExceededError as exc:
            return err(str(exc))
        except NetworkUnavailableError as exc:
            logger.info("Service unreachable, queueing %s: %s", name, exc)
            return self._enqueue(data, name)
        except RemoteServiceError as exc:
            if exc.is_transient:
                logger.info("Service error %d, queueing %s", exc.status, name)
                return self._enqueue(data, name)
            return err(exc.message or MESSAGE_UPLOAD_FAILED)
        except (ShelfSyncError, ValidationError) as exc:
            logger.warning("Upload of %s failed: %s", name, exc)
            return err(MESSAGE_UPLOAD_FAILED)

        self.documents_changed.emit(document)
        return ok(UploadOutcome.UPLOADED)

    async def upload_file(
        self, path: Path, access: FileAccess | None = None
    ) -> Result[UploadOutcome, str]:
        """Read an externally-owned file (holding its access grant) and upload it."""
        try:
            data = read_external(path, access)
        except StorageError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return err("Could not read the selected file.")
        return await self.upload(data, path.name)

    async def _upload_checked(self, data: bytes, file_name: str) -> RemoteDocument:
        await self._validate_quota(len(data))
        return await self.documents.upload_document(data, file_name, guess_mime_type(file_name))

    async def _validate_quota(self, next_bytes: int) -> None:
        max_bytes = self.config.max_storage_bytes
        if next_bytes > max_bytes:
            raise QuotaExceededError(_too_large(self.config.max_storage_mb))

        documents = await self.documents.list_documents()
        if self.index is not None:
            self.index.save(documents)
        usage = sum(doc.metadata.file_size or 0 for doc in documents)
        if usage + next_bytes > max_bytes:
            raise QuotaExceededError(
                f"Storage limit reached ({self.config.max_storage_mb}MB). "
                "Delete a document or upgrade."
            )

    def _enqueue(self, data: bytes, file_name: str) -> Result[UploadOutcome, str]:
        try:
            self.uploads.enqueue(data, file_name)
        except StorageError as exc:
            logger.warning("Could not queue %s: %s", file_name, exc)
            return err("Could not save the file for a later upload.")
        return ok(UploadOutcome.QUEUED)

    # ------------------------------------------------------------------ #
    # Reading positions
    # ------------------------------------------------------------------ #

    async def flush_positions(self) -> FlushReport:
        if self._position_lock.locked():
            logger.debug("Position flush already running; skipping trigger")
            return FlushReport(
                queue="positions", skipped=True, remaining=len(self.positions.list())
            )

        async with self._position_lock:
            if not self.network.is_online:
                return FlushReport(
                    queue="positions", skipped=True, remaining=len(self.positions.list())
                )

            attempted = completed = 0
            error: str | None = None
            for entry in self.positions.list():
                attempted += 1
                try:
                    await self._push_position(entry)
                except ShelfSyncError as exc:
                    logger.info("Position flush stopped at %s: %s", entry.document_id, exc)
                    error = _describe(exc)
                    break
                completed += 1

            return FlushReport(
                queue="positions",
                attempted=attempted,
                completed=completed,
                remaining=len(self.positions.list()),
                error=error,
            )

    async def record_position(self, document_id: str, page_number: int, progress: float) -> bool:
        """Save a position locally, then try to sync it right away.

        Returns True when the server confirmed the write. A False return is
        not an error: the entry stays queued for the next flush.
        """
        entry = self.positions.save(document_id, page_number, progress)
        if not self.network.is_online:
            return False
        try:
            await self._push_position(entry)
        except ShelfSyncError as exc:
            logger.info("Position for %s queued: %s", document_id, exc)
            return False
        return True

    async def current_position(self, document_id: str) -> tuple[int, float] | None:
        """Best known ``(page_number, progress)`` for ``document_id``.

        An unsynced local entry wins over the server's copy.
        """
        pending = self.positions.get(document_id)
        if pending is not None:
            return pending.page_number, pending.progress
        if not self.network.is_online:
            return None
        try:
            remote = await self.positions_service.get_reading_position(document_id)
        except (ShelfSyncError, ValidationError) as exc:
            logger.info("Could not fetch reading position for %s: %s", document_id, exc)
            return None
        if remote is None or remote.page_number is None:
            return None
        return max(1, remote.page_number), min(1.0, max(0.0, remote.progress or 0.0))

    async def _push_position(self, entry: PendingPositionEntry) -> None:
        await self.positions_service.update_reading_position(
            entry.document_id, entry.page_number, entry.progress
        )
        if not self.positions.remove_if_unchanged(entry):
            logger.debug("Newer position for %s kept in queue", entry.document_id)

    # ------------------------------------------------------------------ #
    # Triggers
    # ------------------------------------------------------------------ #

    async def flush_all(self) -> tuple[FlushReport, FlushReport]:
        """Flush both queues side by side; never raises."""
        results = await asyncio.gather(
            self.flush_positions(), self.flush_uploads(), return_exceptions=True
        )
        positions, uploads = (
            _as_report(name, result) for name, result in zip(("positions", "uploads"), results)
        )
        return positions, uploads

    async def on_foreground(self) -> tuple[FlushReport, FlushReport]:
        return await self.flush_all()

    async def on_network_change(self) -> tuple[FlushReport, FlushReport] | None:
        if not self.network.is_online:
            return None
        return await self.flush_all()


def _as_report(queue: str, result: FlushReport | BaseException) -> FlushReport:
    if isinstance(result, FlushReport):
        return result
    if not isinstance(result, Exception):
        raise result
    logger.error("Unexpected error flushing %s", queue, exc_info=result)
    return FlushReport(queue=queue, error=_describe(result))


def _describe(exc: BaseException) -> str:
    if isinstance(exc, RemoteServiceError):
        return exc.message
    return str(exc) or type(exc).__name__


def _too_large(max_mb: int) -> str:
    return f"File too large. Maximum single file size is {max_mb}MB."


__all__ = ["SyncReconciler", "FlushReport", "UploadOutcome"]
