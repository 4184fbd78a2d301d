"""Fixtures shared by the shelfsync test suite.

Every store lives under pytest's ``tmp_path`` so tests never share state on
disk. Remote collaborators are the in-memory fakes from ``fakes.py``.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeDocumentService, FakePositionService

from shelfsync.remote.network import NetworkState
from shelfsync.storage import (
    DocumentsIndexStore,
    OfflinePageStore,
    PendingPositionQueue,
    PendingUploadQueue,
    PinStore,
)


@pytest.fixture  # type: ignore[misc]
def documents() -> FakeDocumentService:
    return FakeDocumentService()


@pytest.fixture  # type: ignore[misc]
def position_service() -> FakePositionService:
    return FakePositionService()


@pytest.fixture  # type: ignore[misc]
def network() -> NetworkState:
    return NetworkState(online=True, unmetered=True)


@pytest.fixture  # type: ignore[misc]
def page_store(tmp_path: Path) -> OfflinePageStore:
    return OfflinePageStore.in_data_dir(tmp_path)


@pytest.fixture  # type: ignore[misc]
def pins(tmp_path: Path) -> PinStore:
    return PinStore.in_data_dir(tmp_path)


@pytest.fixture  # type: ignore[misc]
def position_queue(tmp_path: Path) -> PendingPositionQueue:
    return PendingPositionQueue.in_data_dir(tmp_path)


@pytest.fixture  # type: ignore[misc]
def upload_queue(tmp_path: Path) -> PendingUploadQueue:
    return PendingUploadQueue.in_data_dir(tmp_path)


@pytest.fixture  # type: ignore[misc]
def index_store(tmp_path: Path) -> DocumentsIndexStore:
    return DocumentsIndexStore.in_data_dir(tmp_path)
