"""
Document Reader: resolve the pages to show for a document.

Order of preference:

1. A valid cached copy from the `OfflinePageStore`. When the document is pinned
   and the service is reachable, the server checksum is checked in the
   background of the call and a stale copy triggers a re-download through the
   coordinator.
2. The optimized (pre-paginated) payload. Partial pages are returned while the
   server is still processing; a ready payload of a pinned document is cached.
3. The raw content blocks, paginated by backend page numbers or, when those
   are missing, by the injected `Paginator`.

Offline with nothing cached raises `OfflineCopyUnavailableError`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from pydantic import ValidationError

from shelfsync.core.contracts.document import OptimizedDocumentJob, ProcessingStatus
from shelfsync.core.errors import (
    NetworkUnavailableError,
    OfflineCopyUnavailableError,
    RemoteServiceError,
    ShelfSyncError,
)
from shelfsync.core.paging import FixedSizePaginator, Paginator, paginate
from shelfsync.core.settings import SyncConfig, get_logger
from shelfsync.remote.interfaces import DocumentService, NetworkMonitor
from shelfsync.storage.offline_pages import OfflinePageStore
from shelfsync.storage.pins import PinStore

from .coordinator import OfflineSyncCoordinator

logger = get_logger(__name__)


class PageSource(str, Enum):
    CACHE = "cache"
    OPTIMIZED = "optimized"
    CONTENT = "content"


@dataclass(frozen=True)
class LoadedDocument:
    document_id: str
    source: PageSource
    processing_status: ProcessingStatus = ProcessingStatus.READY
    pages: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.processing_status is ProcessingStatus.READY


class DocumentReader:
    """Cache-first page loading with a live fallback."""

    def __init__(
        self,
        documents: DocumentService,
        pages: OfflinePageStore,
        pins: PinStore,
        network: NetworkMonitor,
        coordinator: OfflineSyncCoordinator | None = None,
        paginator: Paginator | None = None,
        config: SyncConfig | None = None,
    ) -> None:
        self.documents = documents
        self.pages = pages
        self.pins = pins
        self.network = network
        self.coordinator = coordinator
        self.paginator = paginator or FixedSizePaginator()
        self.config = config or SyncConfig()

    async def load(self, document_id: str) -> LoadedDocument:
        cached = self.pages.load(document_id)
        if cached:
            logger.debug("Cache hit for %s (%d pages)", document_id, len(cached))
            if self.network.is_online and self.pins.is_pinned(document_id):
                await self._refresh_if_stale(document_id)
            return LoadedDocument(document_id, PageSource.CACHE, pages=cached)

        if not self.network.is_online:
            raise OfflineCopyUnavailableError(document_id)

        try:
            return await self._load_remote(document_id)
        except NetworkUnavailableError as exc:
            raise OfflineCopyUnavailableError(document_id) from exc

    async def _refresh_if_stale(self, document_id: str) -> None:
        if self.coordinator is None:
            return
        try:
            meta = await self.documents.get_optimized_meta(document_id)
        except (ShelfSyncError, ValidationError) as exc:
            logger.debug("Checksum check for %s skipped: %s", document_id, exc)
            return
        if meta.processing_status is ProcessingStatus.READY:
            self.coordinator.ensure_current(document_id, meta.checksum)

    async def _load_remote(self, document_id: str) -> LoadedDocument:
        job = await self._fetch_optimized(document_id)
        if job is not None:
            if job.processing_status is ProcessingStatus.FAILED:
                logger.warning("Server failed to process %s", document_id)
                return LoadedDocument(document_id, PageSource.OPTIMIZED, ProcessingStatus.FAILED)
            if job.processing_status is ProcessingStatus.PROCESSING:
                return LoadedDocument(
                    document_id,
                    PageSource.OPTIMIZED,
                    ProcessingStatus.PROCESSING,
                    list(job.pages or []),
                )
            if job.pages:
                self._cache_if_pinned(job)
                return LoadedDocument(document_id, PageSource.OPTIMIZED, pages=list(job.pages))
            logger.info("Optimized payload of %s is empty; using content blocks", document_id)

        detail = await self.documents.get_document(document_id)
        pages = paginate(detail.content, self.paginator)
        logger.debug("Paginated %s from content blocks (%d pages)", document_id, len(pages))
        return LoadedDocument(document_id, PageSource.CONTENT, pages=pages)

    async def _fetch_optimized(self, document_id: str) -> OptimizedDocumentJob | None:
        """Fetch the optimized payload, retrying one network failure.

        ``None`` means the service has no optimized endpoint for this document.
        """
        try:
            return await self.documents.get_optimized_document(document_id)
        except NetworkUnavailableError:
            await asyncio.sleep(self.config.poll_interval)
            return await self.documents.get_optimized_document(document_id)
        except RemoteServiceError as exc:
            if exc.status == 404:
                return None
            raise

    def _cache_if_pinned(self, job: OptimizedDocumentJob) -> None:
        if not self.pins.is_pinned(job.document_id) or not job.pages:
            return
        saved = self.pages.save(job.document_id, job.pages, job.optimized_version, job.checksum)
        if saved.is_err():
            logger.warning("Could not cache %s: %s", job.document_id, saved.unwrap_err())


__all__ = ["DocumentReader", "LoadedDocument", "PageSource"]
