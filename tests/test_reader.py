"""Tests for the cache-first document reader."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FAST, FakeDocumentService, make_job

from shelfsync.core.contracts import ContentBlock, ProcessingStatus, RemoteDocumentDetail
from shelfsync.core.errors import NetworkUnavailableError, OfflineCopyUnavailableError
from shelfsync.core.paging import FixedSizePaginator
from shelfsync.remote.network import NetworkState
from shelfsync.storage import OfflinePageStore, PinStore
from shelfsync.sync.coordinator import OfflineSyncCoordinator
from shelfsync.sync.reader import DocumentReader, LoadedDocument, PageSource


def _reader(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
    coordinator: OfflineSyncCoordinator | None = None,
) -> DocumentReader:
    return DocumentReader(
        documents,
        page_store,
        pins,
        network,
        coordinator=coordinator,
        paginator=FixedSizePaginator(max_chars=20),
        config=FAST,
    )


def _load(reader: DocumentReader, document_id: str) -> LoadedDocument:
    return asyncio.run(reader.load(document_id))


def test_cached_copy_is_served_offline(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    page_store.save("d1", ["one", "two"], version=1, checksum="s")
    network.update(online=False, unmetered=False)

    loaded = _load(_reader(documents, page_store, pins, network), "d1")

    assert loaded.source is PageSource.CACHE
    assert loaded.pages == ["one", "two"]
    assert loaded.is_complete
    assert documents.optimized_calls == {}


def test_offline_without_cache_raises(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    network.update(online=False, unmetered=False)
    with pytest.raises(OfflineCopyUnavailableError) as info:
        _load(_reader(documents, page_store, pins, network), "d1")
    assert info.value.document_id == "d1"


def test_unreachable_service_raises_offline_unavailable(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", NetworkUnavailableError("down"))
    with pytest.raises(OfflineCopyUnavailableError):
        _load(_reader(documents, page_store, pins, network), "d1")
    assert documents.optimized_calls["d1"] == 2


def test_one_network_failure_is_retried(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", NetworkUnavailableError("blip"), make_job("d1", "ready", ["p1"]))
    loaded = _load(_reader(documents, page_store, pins, network), "d1")
    assert loaded.source is PageSource.OPTIMIZED
    assert loaded.pages == ["p1"]


def test_ready_payload_is_cached_only_when_pinned(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("pinned", make_job("pinned", "ready", ["a", "b"], checksum="c1"))
    documents.script("loose", make_job("loose", "ready", ["x"]))
    pins.set_pinned("pinned", True)
    reader = _reader(documents, page_store, pins, network)

    assert _load(reader, "pinned").pages == ["a", "b"]
    assert _load(reader, "loose").pages == ["x"]

    assert page_store.load("pinned", "c1") == ["a", "b"]
    assert not page_store.has_local_copy("loose")


def test_processing_returns_partial_pages(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "processing", ["p1", ""]))
    pins.set_pinned("d1", True)

    loaded = _load(_reader(documents, page_store, pins, network), "d1")

    assert loaded.processing_status is ProcessingStatus.PROCESSING
    assert not loaded.is_complete
    assert loaded.pages == ["p1", ""]
    assert not page_store.has_local_copy("d1")


def test_failed_job_has_no_pages(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "failed"))
    loaded = _load(_reader(documents, page_store, pins, network), "d1")
    assert loaded.processing_status is ProcessingStatus.FAILED
    assert loaded.pages == []


def test_missing_optimized_endpoint_falls_back_to_blocks(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.details["d1"] = RemoteDocumentDetail(
        id="d1",
        title="Paged",
        content=[
            ContentBlock(type="paragraph", text="second", page_number=2),
            ContentBlock(type="heading", text="intro", page_number=1),
        ],
    )

    loaded = _load(_reader(documents, page_store, pins, network), "d1")

    assert loaded.source is PageSource.CONTENT
    assert loaded.pages == ["INTRO", "second"]


def test_blocks_without_pages_use_the_paginator(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "ready", []))
    documents.details["d1"] = RemoteDocumentDetail(
        id="d1",
        title="Flat",
        content=[
            ContentBlock(type="paragraph", text="alpha beta gamma", position=0),
            ContentBlock(type="paragraph", text="delta epsilon", position=1),
        ],
    )

    loaded = _load(_reader(documents, page_store, pins, network), "d1")

    assert loaded.source is PageSource.CONTENT
    assert loaded.pages == ["alpha beta gamma", "delta epsilon"]


def test_stale_pinned_copy_triggers_redownload(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    page_store.save("d1", ["old"], version=1, checksum="old-sum")
    pins.set_pinned("d1", True)
    documents.meta["d1"] = make_job("d1", "ready", checksum="new-sum")
    documents.script("d1", make_job("d1", "ready", ["fresh"], checksum="new-sum", version=2))
    coordinator = OfflineSyncCoordinator(documents, page_store, pins, network, FAST)
    reader = _reader(documents, page_store, pins, network, coordinator)

    async def scenario() -> LoadedDocument:
        try:
            loaded = await reader.load("d1")
            await coordinator.wait("d1")
            return loaded
        finally:
            await coordinator.shutdown()

    loaded = asyncio.run(scenario())

    assert loaded.source is PageSource.CACHE
    assert loaded.pages == ["old"]
    assert page_store.load("d1", "new-sum") == ["fresh"]
