"""Observable offline state for one document.

The coordinator publishes a fresh `OfflineStatus` on every transition; UI
consumers subscribe to those snapshots instead of polling the stores.

Phases
------
- ``idle``: pinned but not downloading (waiting for a suitable network), or unpinned.
- ``downloading``: a poll loop is running for the live generation.
- ``ready``: a complete local copy exists.
- ``failed``: the server reported a terminal job failure; not retried automatically.
- ``retry``: polling hit its wall-clock timeout; a later trigger may restart it.
- ``storage_full``: the local write failed for lack of space.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class OfflinePhase(str, Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"
    RETRY = "retry"
    STORAGE_FULL = "storage_full"


MESSAGE_DOWNLOADING = "Downloading…"
MESSAGE_FAILED = "Download failed"
MESSAGE_TRY_AGAIN = "Try again"
MESSAGE_STORAGE_FULL = "Not enough storage"


class OfflineStatus(BaseModel):
    """Snapshot of a document's pin/download/availability state."""

    document_id: str
    pinned: bool = False
    phase: OfflinePhase = OfflinePhase.IDLE
    available: bool = False
    message: str | None = None
    progress_bytes: int | None = None
    progress_label: str | None = None
    availability_token: int = 0

    @property
    def is_downloading(self) -> bool:
        return self.phase is OfflinePhase.DOWNLOADING


__all__ = [
    "OfflinePhase",
    "OfflineStatus",
    "MESSAGE_DOWNLOADING",
    "MESSAGE_FAILED",
    "MESSAGE_TRY_AGAIN",
    "MESSAGE_STORAGE_FULL",
]
