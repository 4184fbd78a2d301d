"""Durable on-disk stores owned by the sync engine.

Each store exclusively owns its files under the configured data directory:

- :class:`OfflinePageStore`      ``offline_documents/<id>/{manifest,pages}.json``
- :class:`PinStore`              ``pinned_documents.json``
- :class:`PendingPositionQueue`  ``pending_reading_positions.json``
- :class:`PendingUploadQueue`    ``pending_uploads/``
- :class:`DocumentsIndexStore`   ``documents_index.json``
"""

from __future__ import annotations

from .documents_index import DocumentsIndexStore
from .offline_pages import OfflinePageStore
from .pins import PinStore
from .positions import PendingPositionQueue
from .uploads import FileAccess, PendingUploadQueue

__all__ = [
    "DocumentsIndexStore",
    "OfflinePageStore",
    "PinStore",
    "PendingPositionQueue",
    "PendingUploadQueue",
    "FileAccess",
]
