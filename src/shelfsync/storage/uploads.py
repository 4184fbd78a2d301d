"""
Pending Upload Queue: files waiting to be uploaded to the remote service.

Layout
------
::

    pending_uploads/pending_uploads.json   # manifest, newest entry first
    pending_uploads/<id>.bin               # payload bytes for each entry

The manifest keeps the newest entry first (what a "pending" list in the UI
shows); flush order is still oldest-first by ``created_at`` via `pending()`.

Legacy payload names
--------------------
Earlier releases stored payloads as ``<id>.pdf``. `migrate_legacy_payload` renames
such a file to the current scheme the first time an id is touched, so nothing
else in the code base needs to know the old name.

Externally-owned files
----------------------
Files picked from outside the app sandbox may need a temporary access grant
before they can be read. `enqueue_file` acquires the grant, reads, and releases
it in ``finally`` whether or not the read succeeded.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter

from shelfsync.core.contracts.pending import PendingUploadEntry
from shelfsync.core.errors import StorageError
from shelfsync.core.settings import get_logger

from ._files import read_json, write_bytes_atomic, write_json_atomic

logger = get_logger(__name__)

UPLOADS_DIR = "pending_uploads"
MANIFEST_FILE = "pending_uploads.json"
PAYLOAD_SUFFIX = ".bin"
LEGACY_PAYLOAD_SUFFIX = ".pdf"

_ENTRIES = TypeAdapter(list[PendingUploadEntry])


class FileAccess(Protocol):
    """Platform hook granting temporary read access to an external file.

    ``acquire`` returns True when a grant was actually taken and therefore
    must be released.
    """

    def acquire(self, path: Path) -> bool: ...

    def release(self, path: Path) -> None: ...


@contextmanager
def scoped_access(path: Path, access: FileAccess | None) -> Iterator[None]:
    """Hold ``access`` for ``path`` for the duration of the block."""
    granted = access.acquire(path) if access is not None else False
    try:
        yield
    finally:
        if granted and access is not None:
            access.release(path)


def read_external(path: Path, access: FileAccess | None = None) -> bytes:
    """Read an externally-owned file while holding its access grant.

    Raises `StorageError` when the file cannot be read; the grant is released
    either way.
    """
    with scoped_access(path, access):
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError.from_os_error(f"read {path}", exc) from exc


class PendingUploadQueue:
    """Durable FIFO of files to upload, with one payload file per entry."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.manifest_path = base_dir / MANIFEST_FILE
        self._lock = threading.RLock()

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> PendingUploadQueue:
        return cls(data_dir / UPLOADS_DIR)

    # ---------------------------------------------------------------- payloads

    def _current_path(self, upload_id: str) -> Path:
        return self.base_dir / f"{upload_id}{PAYLOAD_SUFFIX}"

    def _legacy_path(self, upload_id: str) -> Path:
        return self.base_dir / f"{upload_id}{LEGACY_PAYLOAD_SUFFIX}"

    def migrate_legacy_payload(self, upload_id: str) -> bool:
        """Rename ``<id>.pdf`` to ``<id>.bin`` when only the legacy file exists.

        Returns True when a rename happened.
        """
        current = self._current_path(upload_id)
        legacy = self._legacy_path(upload_id)
        if current.exists() or not legacy.exists():
            return False
        try:
            legacy.rename(current)
        except OSError as exc:
            logger.warning("Legacy payload %s not migrated: %s", legacy.name, exc)
            return False
        logger.info("Migrated legacy upload payload %s", legacy.name)
        return True

    def payload_path(self, upload_id: str) -> Path:
        with self._lock:
            self.migrate_legacy_payload(upload_id)
            return self._current_path(upload_id)

    # ---------------------------------------------------------------- manifest

    def _load_manifest(self) -> list[PendingUploadEntry]:
        if not self.manifest_path.is_file():
            return []
        try:
            entries: list[PendingUploadEntry] = read_json(self.manifest_path, _ENTRIES)
        except StorageError as exc:
            logger.warning("Upload manifest unreadable, treating as empty: %s", exc)
            return []
        return entries

    def list(self) -> list[PendingUploadEntry]:
        """Entries in manifest order (newest first)."""
        with self._lock:
            return self._load_manifest()

    def pending(self) -> list[PendingUploadEntry]:
        """Entries in flush order (oldest first by ``created_at``)."""
        with self._lock:
            entries = self._load_manifest()
        # manifest is newest-first; reversing keeps ties in insertion order
        return sorted(reversed(entries), key=lambda e: e.created_at)

    def __len__(self) -> int:
        return len(self.list())

    # --------------------------------------------------------------- mutations

    def enqueue(self, data: bytes, file_name: str) -> PendingUploadEntry:
        """Store ``data`` and prepend a manifest entry.

        Raises
        ------
        StorageError
            If the payload or the manifest could not be written. A payload
            written before a failed manifest write is removed again.
        """
        entry = PendingUploadEntry(
            id=str(uuid.uuid4()),
            file_name=file_name,
            created_at=datetime.now(UTC),
        )
        payload = self._current_path(entry.id)
        with self._lock:
            entries = self._load_manifest()
            write_bytes_atomic(payload, data)
            try:
                write_json_atomic(self.manifest_path, _ENTRIES, [entry, *entries])
            except StorageError:
                payload.unlink(missing_ok=True)
                raise
        logger.info("Queued upload %s (%s, %d bytes)", entry.id, entry.file_name, len(data))
        return entry

    def enqueue_file(self, path: Path, access: FileAccess | None = None) -> PendingUploadEntry:
        """Read an externally-owned file under a scoped access grant and enqueue it."""
        return self.enqueue(read_external(path, access), path.name)

    def load_data(self, upload_id: str) -> bytes:
        """Return the payload bytes for ``upload_id``; raises `StorageError` if gone."""
        path = self.payload_path(upload_id)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError.from_os_error(f"read payload {upload_id}", exc) from exc

    def remove(self, upload_id: str) -> None:
        """Drop the manifest entry and payload; missing pieces are not errors."""
        with self._lock:
            try:
                self.payload_path(upload_id).unlink(missing_ok=True)
                self._legacy_path(upload_id).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Payload for %s not deleted: %s", upload_id, exc)
            entries = self._load_manifest()
            kept = [e for e in entries if e.id != upload_id]
            if len(kept) == len(entries):
                return
            try:
                write_json_atomic(self.manifest_path, _ENTRIES, kept)
            except StorageError as exc:
                logger.warning("Manifest not rewritten after removing %s: %s", upload_id, exc)


__all__ = [
    "FileAccess",
    "PendingUploadQueue",
    "scoped_access",
    "read_external",
    "UPLOADS_DIR",
    "MANIFEST_FILE",
    "PAYLOAD_SUFFIX",
    "LEGACY_PAYLOAD_SUFFIX",
]
