"""
Remote Document Contracts

Read-only views of what the remote document service returns:

- `OptimizedDocumentJob`: the polled state of the server-side optimization job.
  Pages arrive incrementally while ``processing_status`` is ``processing``.
- `RemoteDocument` / `RemoteDocumentDetail`: listing and detail records.
- `DocumentSummary`: the denormalized per-document row persisted in
  ``documents_index.json`` for offline-first library rendering.

None of these are persisted as-is except `DocumentSummary`. Wire keys follow
the backend (snake_case, ``optimized_checksum_sha256`` and friends).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .block import ContentBlock


class ProcessingStatus(str, Enum):
    """Lifecycle of the server-side optimization job."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class OptimizedDocumentJob(BaseModel):
    """Polled status of a document's optimized (pre-paginated) representation."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str
    processing_status: ProcessingStatus = ProcessingStatus.PROCESSING
    optimized_version: int = 1
    checksum: str | None = Field(None, alias="optimized_checksum_sha256")
    size_bytes: int | None = Field(None, alias="optimized_size_bytes")
    pages: list[str] | None = None
    language_code: str | None = None
    processed_at: datetime | None = None

    @field_validator("processing_status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        """Lower-case known statuses; anything unrecognised counts as processing."""
        if isinstance(v, ProcessingStatus):
            return v
        text = str(v or "").strip().lower()
        if text in {s.value for s in ProcessingStatus}:
            return text
        return ProcessingStatus.PROCESSING.value

    @property
    def total_pages(self) -> int:
        return len(self.pages or [])

    @property
    def ready_pages(self) -> int:
        """Pages that already carry text (blank slots are still being computed)."""
        return sum(1 for p in self.pages or [] if p.strip())

    def estimated_bytes(self) -> int | None:
        """Approximate downloaded size: ``(ready / total) * size_bytes``, rounded down.

        Returns ``None`` when either the page list or the total size is unknown.
        This is an estimate for progress display, not a byte count.
        """
        total = self.total_pages
        if total == 0 or self.size_bytes is None:
            return None
        ratio = min(1.0, max(0.0, self.ready_pages / total))
        return max(0, int(self.size_bytes * ratio))


class RemoteReadingPosition(BaseModel):
    """Reading position as reported by the preferences endpoints."""

    progress: float | None = None
    page_number: int | None = None
    updated_at: datetime | None = None


class DocumentMetadata(BaseModel):
    """Extraction metadata attached to each remote document."""

    original_title: str | None = None
    original_author: str | None = None
    language: str | None = None
    page_count: int | None = None
    word_count: int | None = None
    file_size: int | None = None
    format: str | None = None


class RemoteDocument(BaseModel):
    """A document as returned by the listing and upload endpoints."""

    id: str
    user_id: str | None = None
    title: str
    author: str | None = None
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    tag: str | None = None
    is_favorite: bool = False
    reading_position: RemoteReadingPosition | None = None
    original_size_bytes: int | None = None
    processing_status: str | None = None
    optimized_version: int | None = None
    optimized_checksum_sha256: str | None = None
    language_code: str | None = None
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("is_favorite", mode="before")
    @classmethod
    def _null_is_false(cls, v: Any) -> Any:
        return False if v is None else v


class RemoteDocumentDetail(RemoteDocument):
    """A document with its decoded content blocks (fetch-by-id endpoint)."""

    content: list[ContentBlock] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class DocumentSummary(BaseModel):
    """Denormalized library row persisted for offline-first listing."""

    id: str
    title: str
    author: str
    pages_total: int = Field(ge=1)
    current_page: int = Field(ge=1)
    reading_progress: float | None = None
    reading_position_updated_at: datetime | None = None
    size_bytes: int = 0
    updated_at: datetime
    created_at: datetime
    is_favorite: bool = False
    tag: str | None = None
    processing_status: str | None = None
    optimized_version: int | None = None
    optimized_checksum_sha256: str | None = None
    language_code: str | None = None
    processed_at: datetime | None = None

    @classmethod
    def from_remote(cls, doc: RemoteDocument) -> DocumentSummary:
        """Derive a summary row from a listing record."""
        position = doc.reading_position
        saved_page = max(1, (position.page_number if position else None) or 1)
        total_pages = max(1, doc.metadata.page_count or 1, saved_page)
        return cls(
            id=doc.id,
            title=doc.title,
            author=doc.author or doc.metadata.original_author or "Unknown",
            pages_total=total_pages,
            current_page=min(saved_page, total_pages),
            reading_progress=position.progress if position else None,
            reading_position_updated_at=position.updated_at if position else None,
            size_bytes=doc.original_size_bytes or doc.metadata.file_size or 0,
            updated_at=doc.updated_at,
            created_at=doc.created_at,
            is_favorite=doc.is_favorite,
            tag=doc.tag,
            processing_status=doc.processing_status,
            optimized_version=doc.optimized_version,
            optimized_checksum_sha256=doc.optimized_checksum_sha256,
            language_code=doc.language_code,
            processed_at=doc.processed_at,
        )


__all__ = [
    "ProcessingStatus",
    "OptimizedDocumentJob",
    "RemoteReadingPosition",
    "DocumentMetadata",
    "RemoteDocument",
    "RemoteDocumentDetail",
    "DocumentSummary",
]
