"""Pydantic contracts shared across stores, remote client and sync layer."""

from __future__ import annotations

from .block import ContentBlock
from .cache import CacheManifest
from .document import (
    DocumentMetadata,
    DocumentSummary,
    OptimizedDocumentJob,
    ProcessingStatus,
    RemoteDocument,
    RemoteDocumentDetail,
    RemoteReadingPosition,
)
from .pending import DEFAULT_UPLOAD_NAME, PendingPositionEntry, PendingUploadEntry
from .status import OfflinePhase, OfflineStatus

__all__ = [
    "ContentBlock",
    "CacheManifest",
    "DocumentMetadata",
    "DocumentSummary",
    "OptimizedDocumentJob",
    "ProcessingStatus",
    "RemoteDocument",
    "RemoteDocumentDetail",
    "RemoteReadingPosition",
    "DEFAULT_UPLOAD_NAME",
    "PendingPositionEntry",
    "PendingUploadEntry",
    "OfflinePhase",
    "OfflineStatus",
]
