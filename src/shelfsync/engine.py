"""
Engine: wires stores, remote client and sync components for one data directory.

The CLI and the local API both go through `Engine`, so they share a single
construction path. Tests build one with fakes through `Engine.build`.

Lifecycle
---------
``await engine.start()`` must run on the event loop that will own the
background download tasks. It resumes pinned documents, flushes the pending
queues once and subscribes to network changes. Network listeners may fire on
any thread; the engine hops back onto its loop with ``call_soon_threadsafe``
before touching the coordinator. ``await engine.close()`` cancels every background task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shelfsync.core.settings import Settings, SyncConfig, get_logger, load_settings
from shelfsync.remote.client import RemoteClient
from shelfsync.remote.interfaces import DocumentService, ReadingPositionService
from shelfsync.remote.network import NetworkState
from shelfsync.storage import (
    DocumentsIndexStore,
    OfflinePageStore,
    PendingPositionQueue,
    PendingUploadQueue,
    PinStore,
)
from shelfsync.sync import DocumentReader, Library, OfflineSyncCoordinator, SyncReconciler

logger = get_logger(__name__)


@dataclass
class Engine:
    data_dir: Path
    network: NetworkState
    pages: OfflinePageStore
    pins: PinStore
    positions: PendingPositionQueue
    uploads: PendingUploadQueue
    index: DocumentsIndexStore
    coordinator: OfflineSyncCoordinator
    reconciler: SyncReconciler
    reader: DocumentReader
    library: Library
    _loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)
    _unsubscribe: list[Callable[[], None]] = field(default_factory=list, repr=False)
    _flushes: set[asyncio.Task[object]] = field(default_factory=set, repr=False)

    @classmethod
    def build(
        cls,
        data_dir: Path,
        documents: DocumentService,
        positions_service: ReadingPositionService,
        network: NetworkState | None = None,
        config: SyncConfig | None = None,
    ) -> Engine:
        config = config or SyncConfig()
        network = network or NetworkState()
        pages = OfflinePageStore.in_data_dir(data_dir)
        pins = PinStore.in_data_dir(data_dir)
        positions = PendingPositionQueue.in_data_dir(data_dir)
        uploads = PendingUploadQueue.in_data_dir(data_dir)
        index = DocumentsIndexStore.in_data_dir(data_dir)

        coordinator = OfflineSyncCoordinator(documents, pages, pins, network, config)
        reconciler = SyncReconciler(
            documents, positions_service, uploads, positions, network, config, index=index
        )
        reader = DocumentReader(documents, pages, pins, network, coordinator, config=config)
        library = Library(documents, index)
        return cls(
            data_dir=data_dir,
            network=network,
            pages=pages,
            pins=pins,
            positions=positions,
            uploads=uploads,
            index=index,
            coordinator=coordinator,
            reconciler=reconciler,
            reader=reader,
            library=library,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Engine:
        settings = settings or load_settings()
        client = RemoteClient.from_settings(settings)
        return cls.build(
            settings.data_dir,
            documents=client,
            positions_service=client,
            config=settings.sync_config(),
        )

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._unsubscribe.append(self.network.on_change(self._network_changed))
        self._unsubscribe.append(
            self.reconciler.documents_changed.subscribe(self.library.on_document_added)
        )
        self.coordinator.resume_pinned()
        self._track(self.reconciler.on_foreground())
        logger.info("Engine started for %s", self.data_dir)

    async def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if self._flushes:
            await asyncio.gather(*self._flushes, return_exceptions=True)
        await self.coordinator.shutdown()
        logger.info("Engine stopped")

    def _network_changed(self, _state: NetworkState) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._react_to_network)

    def _react_to_network(self) -> None:
        restarted = self.coordinator.on_network_change()
        if restarted:
            logger.info("Restarted offline downloads: %s", ", ".join(restarted))
        if self.network.is_online:
            self._track(self.reconciler.on_network_change())

    def _track(self, flush: Coroutine[Any, Any, object]) -> None:
        task: asyncio.Task[object] = asyncio.get_running_loop().create_task(flush)
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)


__all__ = ["Engine"]
