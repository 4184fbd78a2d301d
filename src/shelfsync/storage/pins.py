"""Durable set of pinned document ids (user intent to keep an offline copy)."""

from __future__ import annotations

import threading
from pathlib import Path

from pydantic import TypeAdapter

from shelfsync.core.errors import StorageError
from shelfsync.core.settings import get_logger

from ._files import read_json, write_json_atomic

logger = get_logger(__name__)

PINS_FILE = "pinned_documents.json"

_IDS = TypeAdapter(list[str])


class PinStore:
    """Pinned ids persisted as a sorted JSON array."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> PinStore:
        return cls(data_dir / PINS_FILE)

    def pinned_ids(self) -> set[str]:
        with self._lock:
            if not self.path.is_file():
                return set()
            try:
                return set(read_json(self.path, _IDS))
            except StorageError as exc:
                logger.warning("Pin list unreadable, treating as empty: %s", exc)
                return set()

    def is_pinned(self, document_id: str) -> bool:
        return document_id in self.pinned_ids()

    def set_pinned(self, document_id: str, pinned: bool) -> None:
        """Add or remove ``document_id``; raises `StorageError` if the write fails."""
        with self._lock:
            ids = self.pinned_ids()
            if pinned:
                ids.add(document_id)
            else:
                ids.discard(document_id)
            write_json_atomic(self.path, _IDS, sorted(ids))


__all__ = ["PinStore", "PINS_FILE"]
