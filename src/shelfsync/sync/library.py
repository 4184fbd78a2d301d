"""In-memory library view backed by the offline documents index."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from shelfsync.core.contracts.document import DocumentSummary, RemoteDocument
from shelfsync.core.errors import RemoteServiceError, ShelfSyncError
from shelfsync.core.result import Result, err, ok
from shelfsync.core.settings import get_logger
from shelfsync.remote.interfaces import DocumentService
from shelfsync.storage.documents_index import DocumentsIndexStore

from .events import EventChannel

logger = get_logger(__name__)

RECENT_WINDOW = timedelta(days=35)
RECENT_LIMIT = 10
RECENT_MINIMUM = 3


def _title_key(summary: DocumentSummary) -> str:
    return summary.title.casefold()


def _recency(summary: DocumentSummary) -> datetime:
    return max(summary.created_at, summary.updated_at)


class Library:
    """Documents the user owns, available offline from the last listing.

    `refresh` replaces the whole view (and the index) from a full listing.
    `toggle_favorite` updates the view optimistically and rolls back when the
    server rejects the change.
    """

    def __init__(self, documents: DocumentService, index: DocumentsIndexStore) -> None:
        self.documents = documents
        self.index = index
        self.changed: EventChannel[list[DocumentSummary]] = EventChannel("library-changed")
        self._books: list[DocumentSummary] = sorted(index.load(), key=_title_key)

    @property
    def books(self) -> list[DocumentSummary]:
        return list(self._books)

    def get(self, document_id: str) -> DocumentSummary | None:
        return next((b for b in self._books if b.id == document_id), None)

    async def refresh(self) -> Result[list[DocumentSummary], str]:
        try:
            documents = await self.documents.list_documents()
        except (ShelfSyncError, ValidationError) as exc:
            logger.info("Library refresh failed, keeping cached view: %s", exc)
            return err(_message(exc, "Failed to load documents."))
        self._replace(self.index.save(documents))
        return ok(self.books)

    def on_document_added(self, document: RemoteDocument) -> None:
        """Show a freshly uploaded document before the next full refresh."""
        summary = DocumentSummary.from_remote(document)
        self._replace([b for b in self._books if b.id != summary.id] + [summary])

    async def toggle_favorite(self, document_id: str) -> Result[bool, str]:
        """Flip the favorite flag; returns the flag the server accepted."""
        book = self.get(document_id)
        if book is None:
            return err("Missing document id.")

        previous = book.is_favorite
        self._set_favorite(document_id, not previous)
        try:
            await self.documents.set_favorite(document_id, not previous)
        except ShelfSyncError as exc:
            logger.info("Favorite change for %s rejected, reverting: %s", document_id, exc)
            self._set_favorite(document_id, previous)
            return err(_message(exc, "Failed to update favorite."))
        return ok(not previous)

    def recents(self, now: datetime | None = None) -> list[DocumentSummary]:
        """Recently touched documents.

        Small libraries are returned whole. Otherwise up to ten documents from
        the last five weeks, or the three most recent overall when that window
        holds fewer than three.
        """
        ordered = sorted(self._books, key=_recency, reverse=True)
        if len(ordered) < RECENT_LIMIT:
            return ordered
        cutoff = (now or datetime.now(UTC)) - RECENT_WINDOW
        window = [b for b in ordered if _recency(b) >= cutoff]
        if len(window) >= RECENT_MINIMUM:
            return window[:RECENT_LIMIT]
        return ordered[:RECENT_MINIMUM]

    def favorites(self) -> list[DocumentSummary]:
        return [b for b in self._books if b.is_favorite]

    def _set_favorite(self, document_id: str, value: bool) -> None:
        self._replace(
            [
                b.model_copy(update={"is_favorite": value}) if b.id == document_id else b
                for b in self._books
            ]
        )

    def _replace(self, books: list[DocumentSummary]) -> None:
        self._books = sorted(books, key=_title_key)
        self.changed.emit(self.books)


def _message(exc: Exception, fallback: str) -> str:
    if isinstance(exc, RemoteServiceError) and exc.message:
        return exc.message
    return fallback


__all__ = ["Library", "RECENT_LIMIT", "RECENT_MINIMUM", "RECENT_WINDOW"]
