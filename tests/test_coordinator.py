"""
Tests for the Offline Sync Coordinator.

Each test drives a real asyncio loop (`asyncio.run`) with the scripted fake
document service and millisecond-scale timings from `FAST`, so the poll loop,
timeouts and generation handling run exactly as in production.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

from fakes import FAST, FakeDocumentService, make_job

from shelfsync.core.contracts.status import OfflinePhase, OfflineStatus
from shelfsync.core.errors import NetworkUnavailableError, RemoteServiceError, StorageError
from shelfsync.core.result import err
from shelfsync.core.settings import SyncConfig
from shelfsync.remote.network import NetworkState
from shelfsync.storage import OfflinePageStore, PinStore
from shelfsync.sync.coordinator import OfflineSyncCoordinator

T = TypeVar("T")

TEN_PAGES = [f"page {i}" for i in range(1, 11)]


def _run(
    coordinator: OfflineSyncCoordinator,
    scenario: Callable[[OfflineSyncCoordinator], Awaitable[T]],
) -> T:
    async def _main() -> T:
        try:
            return await scenario(coordinator)
        finally:
            await coordinator.shutdown()

    return asyncio.run(_main())


def _coordinator(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
    config: SyncConfig = FAST,
) -> OfflineSyncCoordinator:
    return OfflineSyncCoordinator(documents, page_store, pins, network, config)


def test_enable_with_local_copy_is_ready_without_download(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    page_store.save("d1", ["cached"], version=1, checksum="sum-1")

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        return c.enable("d1").unwrap()

    status = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert status.phase is OfflinePhase.READY
    assert status.pinned and status.available
    assert documents.optimized_calls == {}


def test_download_saves_as_it_goes_until_ready(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script(
        "d1",
        make_job("d1", "processing", ["p1", "", ""]),
        make_job("d1", "ready", ["p1", "p2", "p3"]),
    )
    seen: list[OfflineStatus] = []

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.subscribe(seen.append)
        c.enable("d1")
        return await c.wait("d1")

    coordinator = _coordinator(documents, page_store, pins, network)
    final = _run(coordinator, scenario)

    assert final.phase is OfflinePhase.READY
    assert final.available and final.message is None
    assert page_store.load("d1", "sum-1") == ["p1", "p2", "p3"]
    assert OfflinePhase.DOWNLOADING in {s.phase for s in seen}
    # 1 of 3 pages ready out of 1 MB
    assert "0.3mb" in {s.progress_label for s in seen}
    assert coordinator.running_tasks == 0


def test_superseded_generation_never_overwrites_newer_save(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    """Generation 1 gets 3 pages late; generation 2 saved 10; 10 stay on disk."""
    documents.script(
        "d1",
        make_job("d1", "processing", TEN_PAGES[:3]),
        make_job("d1", "ready", TEN_PAGES),
    )

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        gate = asyncio.Event()
        documents.gates[("d1", 0)] = gate

        c.enable("d1")
        await asyncio.sleep(0.05)
        assert documents.optimized_calls["d1"] == 1

        c.enable("d1")
        final = await c.wait("d1")
        assert page_store.load("d1") == TEN_PAGES

        gate.set()
        await asyncio.sleep(0.05)
        return final

    coordinator = _coordinator(documents, page_store, pins, network)
    final = _run(coordinator, scenario)

    assert final.phase is OfflinePhase.READY
    assert page_store.load("d1") == TEN_PAGES
    assert coordinator.running_tasks == 0


def test_poll_timeout_reports_try_again_and_leaves_no_task(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "processing", None))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[OfflineStatus, int]:
        c.enable("d1")
        final = await c.wait("d1")
        return final, c.running_tasks

    final, running = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert final.phase is OfflinePhase.RETRY
    assert final.message == "Try again"
    assert running == 0
    assert documents.optimized_calls["d1"] > 1


def test_failed_job_is_terminal(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "failed", None))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[OfflineStatus, list[str]]:
        c.enable("d1")
        final = await c.wait("d1")
        return final, c.on_network_change()

    final, restarted = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert final.phase is OfflinePhase.FAILED
    assert final.message == "Download failed"
    assert restarted == []
    assert documents.optimized_calls["d1"] == 1
    assert not page_store.has_local_copy("d1")


def test_ready_without_pages_counts_as_failure(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "ready", []))

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network), scenario)
    assert final.phase is OfflinePhase.FAILED


def test_transient_errors_keep_polling(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script(
        "d1",
        NetworkUnavailableError("timed out"),
        RemoteServiceError(503, "busy"),
        make_job("d1", "ready", ["only"]),
    )

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert final.phase is OfflinePhase.READY
    assert documents.optimized_calls["d1"] == 3


def test_disk_full_surfaces_storage_full(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
    monkeypatch: Any,
) -> None:
    documents.script("d1", make_job("d1", "ready", ["p1"]))

    def _full(*args: Any, **kwargs: Any) -> Any:
        return err(StorageError("write pages.json: No space left", disk_full=True))

    monkeypatch.setattr(page_store, "save", _full)

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert final.phase is OfflinePhase.STORAGE_FULL
    assert final.message == "Not enough storage"
    assert not final.available


def test_waits_for_unmetered_network(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
) -> None:
    network = NetworkState(online=True, unmetered=False)
    documents.script("d1", make_job("d1", "ready", ["p1"]))

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        await asyncio.sleep(0.05)
        assert c.status("d1").phase is OfflinePhase.IDLE
        assert documents.optimized_calls == {}

        network.update(online=True, unmetered=True)
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network), scenario)
    assert final.phase is OfflinePhase.READY


def test_metered_download_allowed_when_not_required(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
) -> None:
    network = NetworkState(online=True, unmetered=False)
    config = dataclasses.replace(FAST, require_unmetered=False)
    documents.script("d1", make_job("d1", "ready", ["p1"]))

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network, config), scenario)
    assert final.phase is OfflinePhase.READY


def test_monitor_exits_when_copy_appears(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
) -> None:
    """Offline monitor notices a copy written elsewhere and reports ready."""
    network = NetworkState(online=False, unmetered=False)

    async def scenario(c: OfflineSyncCoordinator) -> OfflineStatus:
        c.enable("d1")
        await asyncio.sleep(0.03)
        page_store.save("d1", ["from elsewhere"], version=1, checksum=None)
        return await c.wait("d1")

    final = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert final.phase is OfflinePhase.READY
    assert final.available
    assert final.availability_token == 1
    assert documents.optimized_calls == {}


def test_disable_cancels_run_and_deletes_copy(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    documents.script("d1", make_job("d1", "processing", ["p1", ""]))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[OfflineStatus, int]:
        c.enable("d1")
        await asyncio.sleep(0.05)
        assert page_store.has_local_copy("d1")
        token_before = c.status("d1").availability_token

        status = c.disable("d1").unwrap()
        assert status.availability_token == token_before + 1
        await asyncio.sleep(0.02)
        return status, c.running_tasks

    status, running = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert status.phase is OfflinePhase.IDLE
    assert not status.pinned and not status.available
    assert running == 0
    assert not pins.is_pinned("d1")
    assert not page_store.has_local_copy("d1")


def test_disable_keeps_run_when_unpin_fails(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
    monkeypatch: Any,
) -> None:
    documents.script("d1", make_job("d1", "processing", ["p1", ""]))

    def _unwritable(document_id: str, pinned: bool) -> None:
        raise StorageError("write pinned_documents.json: read-only")

    async def scenario(c: OfflineSyncCoordinator) -> tuple[str, OfflineStatus, int]:
        c.enable("d1")
        await asyncio.sleep(0.05)
        monkeypatch.setattr(pins, "set_pinned", _unwritable)
        message = c.disable("d1").unwrap_err()
        return message, c.status("d1"), c.running_tasks

    message, status, running = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert message == "Could not save the offline setting on this device."
    assert status.pinned
    assert running == 1
    assert pins.is_pinned("d1")
    assert page_store.has_local_copy("d1")


def test_resume_pinned_uses_existing_copies(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    pins.set_pinned("cached", True)
    pins.set_pinned("missing", True)
    page_store.save("cached", ["x"], version=1, checksum=None)
    documents.script("missing", make_job("missing", "ready", ["y"]))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[OfflineStatus, OfflineStatus]:
        c.resume_pinned()
        cached = c.status("cached")
        return cached, await c.wait("missing")

    cached, missing = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert cached.phase is OfflinePhase.READY
    assert missing.phase is OfflinePhase.READY
    assert "cached" not in documents.optimized_calls


def test_network_change_restarts_retry_within_cooldown(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    config = dataclasses.replace(FAST, auto_download_cooldown=60.0)
    documents.script("d1", make_job("d1", "processing", None))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[list[str], list[str]]:
        c.enable("d1")
        await c.wait("d1")
        first = c.on_network_change()
        await c.wait("d1")
        second = c.on_network_change()
        return first, second

    first, second = _run(_coordinator(documents, page_store, pins, network, config), scenario)

    assert first == ["d1"]
    assert second == []


def test_explicit_retry_ignores_cooldown(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    config = dataclasses.replace(FAST, auto_download_cooldown=60.0)
    documents.script("d1", make_job("d1", "processing", None))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[OfflinePhase, OfflinePhase]:
        c.enable("d1")
        gave_up = (await c.wait("d1")).phase
        documents.script("d1", make_job("d1", "ready", ["p1"]))
        documents.optimized_calls.clear()
        assert c.retry("d1").is_ok()
        return gave_up, (await c.wait("d1")).phase

    gave_up, after = _run(_coordinator(documents, page_store, pins, network, config), scenario)

    assert gave_up is OfflinePhase.RETRY
    assert after is OfflinePhase.READY


def test_retry_requires_pin(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    coordinator = _coordinator(documents, page_store, pins, network)
    assert coordinator.retry("d1").unwrap_err() == "Document is not kept offline."


def test_stale_checksum_triggers_redownload(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    pins.set_pinned("d1", True)
    page_store.save("d1", ["old"], version=1, checksum="old-sum")
    documents.script("d1", make_job("d1", "ready", ["new"], checksum="new-sum", version=2))

    async def scenario(c: OfflineSyncCoordinator) -> tuple[bool, bool, bool]:
        unchanged = c.ensure_current("d1", "old-sum")
        started = c.ensure_current("d1", "new-sum")
        await c.wait("d1")
        again = c.ensure_current("d1", "new-sum")
        return unchanged, started, again

    unchanged, started, again = _run(
        _coordinator(documents, page_store, pins, network), scenario
    )

    assert (unchanged, started, again) == (False, True, False)
    assert page_store.load("d1", "new-sum") == ["new"]


def test_pin_write_failure_is_reported(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    network: NetworkState,
    tmp_path: Path,
) -> None:
    blocked = tmp_path / "pins-as-dir"
    blocked.mkdir()
    pins = PinStore(blocked)

    async def scenario(c: OfflineSyncCoordinator) -> tuple[bool, int]:
        result = c.enable("d1")
        return result.is_err(), c.running_tasks

    failed, running = _run(_coordinator(documents, page_store, pins, network), scenario)

    assert failed
    assert running == 0


def test_prune_removes_unpinned_copies(
    documents: FakeDocumentService,
    page_store: OfflinePageStore,
    pins: PinStore,
    network: NetworkState,
) -> None:
    pins.set_pinned("keep", True)
    page_store.save("keep", ["k"], version=1, checksum=None)
    page_store.save("drop", ["d"], version=1, checksum=None)

    async def scenario(c: OfflineSyncCoordinator) -> list[str]:
        return c.prune()

    assert _run(_coordinator(documents, page_store, pins, network), scenario) == ["drop"]
    assert page_store.cached_ids() == ["keep"]
