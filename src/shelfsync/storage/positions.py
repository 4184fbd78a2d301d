"""
Pending Position Queue: reading positions not yet confirmed by the server.

The whole queue lives in one small JSON array (``pending_reading_positions.json``)
that is rewritten atomically on every mutation. There is at most one entry per
document: saving again replaces the previous entry (last write wins, no history).

Persistence failures are logged and swallowed; a lost local write is
equivalent to the user not having moved, which the next position change fixes.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import TypeAdapter

from shelfsync.core.contracts.pending import PendingPositionEntry
from shelfsync.core.errors import StorageError
from shelfsync.core.settings import get_logger

from ._files import read_json, write_json_atomic

logger = get_logger(__name__)

POSITIONS_FILE = "pending_reading_positions.json"

_ENTRIES = TypeAdapter(list[PendingPositionEntry])


class PendingPositionQueue:
    """Upsert-by-document queue of reading positions."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> PendingPositionQueue:
        return cls(data_dir / POSITIONS_FILE)

    def _load_all(self) -> list[PendingPositionEntry]:
        if not self.path.is_file():
            return []
        try:
            entries: list[PendingPositionEntry] = read_json(self.path, _ENTRIES)
        except StorageError as exc:
            logger.warning("Pending positions unreadable, treating as empty: %s", exc)
            return []
        return entries

    def _save_all(self, entries: list[PendingPositionEntry]) -> None:
        try:
            write_json_atomic(self.path, _ENTRIES, entries)
        except StorageError as exc:
            logger.warning("Pending positions not persisted: %s", exc)

    def save(self, document_id: str, page_number: int, progress: float) -> PendingPositionEntry:
        """Replace any entry for ``document_id`` with a fresh one."""
        entry = PendingPositionEntry(
            document_id=document_id,
            page_number=max(1, page_number),
            progress=min(1.0, max(0.0, progress)),
            updated_at=datetime.now(UTC),
        )
        with self._lock:
            entries = [e for e in self._load_all() if e.document_id != document_id]
            entries.append(entry)
            self._save_all(entries)
        return entry

    def get(self, document_id: str) -> PendingPositionEntry | None:
        with self._lock:
            return next((e for e in self._load_all() if e.document_id == document_id), None)

    def list(self) -> list[PendingPositionEntry]:
        with self._lock:
            return self._load_all()

    def remove(self, document_id: str) -> None:
        with self._lock:
            entries = self._load_all()
            kept = [e for e in entries if e.document_id != document_id]
            if len(kept) != len(entries):
                self._save_all(kept)

    def remove_if_unchanged(self, entry: PendingPositionEntry) -> bool:
        """Remove ``entry`` only if it is still the stored entry for its document.

        A newer position saved while the flush was talking to the server must
        survive, so the stored entry is compared by value first.
        """
        with self._lock:
            entries = self._load_all()
            kept = [e for e in entries if e != entry]
            if len(kept) == len(entries):
                return False
            self._save_all(kept)
            return True


__all__ = ["PendingPositionQueue", "POSITIONS_FILE"]
