"""Offline-first library index (``documents_index.json``).

The index is regenerated wholesale from the latest successful full listing
fetch and never patched in place, so it always mirrors one coherent server
snapshot. Reads fall back to an empty library on any problem.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from pydantic import TypeAdapter

from shelfsync.core.contracts.document import DocumentSummary, RemoteDocument
from shelfsync.core.errors import StorageError
from shelfsync.core.settings import get_logger

from ._files import read_json, write_json_atomic

logger = get_logger(__name__)

INDEX_FILE = "documents_index.json"

_SUMMARIES = TypeAdapter(list[DocumentSummary])


class DocumentsIndexStore:
    """Persisted list of `DocumentSummary` rows."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> DocumentsIndexStore:
        return cls(data_dir / INDEX_FILE)

    def load(self) -> list[DocumentSummary]:
        if not self.path.is_file():
            return []
        try:
            summaries: list[DocumentSummary] = read_json(self.path, _SUMMARIES)
        except StorageError as exc:
            logger.warning("Documents index unreadable: %s", exc)
            return []
        return summaries

    def save(self, documents: Iterable[RemoteDocument]) -> list[DocumentSummary]:
        """Rebuild the index from a full listing; returns the summaries written.

        A failed write is logged and leaves the previous index untouched.
        """
        summaries = [DocumentSummary.from_remote(doc) for doc in documents]
        try:
            write_json_atomic(self.path, _SUMMARIES, summaries)
        except StorageError as exc:
            logger.warning("Documents index not persisted: %s", exc)
        return summaries


__all__ = ["DocumentsIndexStore", "INDEX_FILE"]
