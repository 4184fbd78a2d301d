"""Sync layer: offline downloads, queue reconciliation, reading and library views."""

from __future__ import annotations

from .coordinator import OfflineSyncCoordinator
from .events import EventChannel
from .library import Library
from .progress import format_progress_mb
from .reader import DocumentReader, LoadedDocument, PageSource
from .reconciler import FlushReport, SyncReconciler, UploadOutcome

__all__ = [
    "OfflineSyncCoordinator",
    "EventChannel",
    "Library",
    "format_progress_mb",
    "DocumentReader",
    "LoadedDocument",
    "PageSource",
    "FlushReport",
    "SyncReconciler",
    "UploadOutcome",
]
