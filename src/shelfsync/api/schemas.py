"""Response models of the local API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from shelfsync.core.contracts.document import ProcessingStatus
from shelfsync.sync.reader import LoadedDocument, PageSource
from shelfsync.sync.reconciler import FlushReport


class PagesResponse(BaseModel):
    document_id: str
    source: PageSource
    processing_status: ProcessingStatus
    page_count: int
    pages: list[str] = Field(default_factory=list)

    @classmethod
    def from_loaded(cls, loaded: LoadedDocument) -> PagesResponse:
        return cls(
            document_id=loaded.document_id,
            source=loaded.source,
            processing_status=loaded.processing_status,
            page_count=len(loaded.pages),
            pages=loaded.pages,
        )


class FlushReportModel(BaseModel):
    queue: str
    attempted: int
    completed: int
    dropped: int
    remaining: int
    skipped: bool
    error: str | None = None

    @classmethod
    def from_report(cls, report: FlushReport) -> FlushReportModel:
        return cls(
            queue=report.queue,
            attempted=report.attempted,
            completed=report.completed,
            dropped=report.dropped,
            remaining=report.remaining,
            skipped=report.skipped,
            error=report.error,
        )


class FlushResponse(BaseModel):
    positions: FlushReportModel
    uploads: FlushReportModel


__all__ = ["PagesResponse", "FlushReportModel", "FlushResponse"]
