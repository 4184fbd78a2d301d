"""
Interfaces of the external collaborators the sync engine depends on.

The coordinator and reconciler receive these at construction time instead of
reaching for process-wide singletons, so tests can pass in fakes and shrink
every timeout. `shelfsync.remote.client.RemoteClient` implements both service
protocols over HTTP; `shelfsync.remote.network.NetworkState` implements
`NetworkMonitor`.

All service methods are coroutines. Implementations raise
`NetworkUnavailableError` when the service is unreachable and
`RemoteServiceError` for non-success responses.
"""

from __future__ import annotations

from typing import Protocol

from shelfsync.core.contracts.document import (
    OptimizedDocumentJob,
    RemoteDocument,
    RemoteDocumentDetail,
    RemoteReadingPosition,
)


class DocumentService(Protocol):
    """Remote documents API (listing, content, optimized job, uploads)."""

    async def get_optimized_document(self, document_id: str) -> OptimizedDocumentJob: ...

    async def get_optimized_meta(self, document_id: str) -> OptimizedDocumentJob:
        """Same job view without the page payload (cheap checksum lookup)."""
        ...

    async def get_document(self, document_id: str) -> RemoteDocumentDetail: ...

    async def list_documents(self) -> list[RemoteDocument]: ...

    async def upload_document(
        self, data: bytes, file_name: str, mime_type: str
    ) -> RemoteDocument: ...

    async def set_favorite(self, document_id: str, is_favorite: bool) -> None: ...


class ReadingPositionService(Protocol):
    """Remote preferences API for reading positions."""

    async def update_reading_position(
        self, document_id: str, page_number: int, progress: float
    ) -> None: ...

    async def get_reading_positions(self) -> dict[str, RemoteReadingPosition]: ...

    async def get_reading_position(self, document_id: str) -> RemoteReadingPosition | None: ...


class NetworkMonitor(Protocol):
    """Current reachability as last observed by the platform."""

    @property
    def is_online(self) -> bool: ...

    @property
    def is_unmetered(self) -> bool: ...


class TokenProvider(Protocol):
    """Source of the bearer token for authenticated requests."""

    def bearer_token(self) -> str | None: ...


__all__ = ["DocumentService", "ReadingPositionService", "NetworkMonitor", "TokenProvider"]
