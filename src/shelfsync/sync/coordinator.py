"""
Offline Sync Coordinator: pin, download and keep offline copies current.

Responsibilities
----------------
- **Pinning**: `enable` / `disable` record the user's intent in the `PinStore`
  and start or tear down the per-document background task.
- **Monitoring**: one asyncio task per pinned document waits for a suitable
  network (online, and unmetered unless that requirement is switched off).
  If a complete local copy shows up meanwhile (relaunch, another process),
  the task reports ``ready`` and exits without downloading.
- **Downloading**: the task polls the optimized-document job every
  ``poll_interval`` seconds, saving pages as they arrive so a crash or
  cancellation keeps partial progress. ``ready`` ends the run, ``failed`` is
  terminal, and a run that exceeds ``poll_timeout`` reports "Try again" and
  exits; it never polls forever.
- **Observability**: every transition publishes an `OfflineStatus` snapshot on
  `status_changed`.

Generations
-----------
Each run is tagged with the document's generation counter. Starting a new run,
disabling, or shutting down bumps the counter. A run re-checks its generation
after every suspension point and before every write, so an older run whose
network call completes late drops its result instead of overwriting a newer
save. Old runs are not force-cancelled on restart; they notice and return.

State is in-memory for one session; everything durable lives in the stores.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import ValidationError

from shelfsync.core.contracts.document import OptimizedDocumentJob, ProcessingStatus
from shelfsync.core.contracts.status import (
    MESSAGE_DOWNLOADING,
    MESSAGE_FAILED,
    MESSAGE_STORAGE_FULL,
    MESSAGE_TRY_AGAIN,
    OfflinePhase,
    OfflineStatus,
)
from shelfsync.core.errors import ShelfSyncError, StorageError
from shelfsync.core.result import Result, err, ok
from shelfsync.core.settings import SyncConfig, get_logger
from shelfsync.remote.interfaces import DocumentService, NetworkMonitor
from shelfsync.storage.offline_pages import OfflinePageStore
from shelfsync.storage.pins import PinStore

from .events import EventChannel
from .progress import format_progress_mb

logger = get_logger(__name__)


@dataclass(slots=True)
class _Session:
    """Transient per-document bookkeeping."""

    status: OfflineStatus
    generation: int = 0
    task: asyncio.Task[None] | None = None
    job: OptimizedDocumentJob | None = None
    last_auto_start: float | None = None
    stale_tasks: set[asyncio.Task[None]] = field(default_factory=set)


class OfflineSyncCoordinator:
    """Owns the background download task of every pinned document.

    Methods that start work (`enable`, `retry`, `resume_pinned`,
    `ensure_current`, `on_network_change`) must be called from the event loop thread.
    """

    def __init__(
        self,
        documents: DocumentService,
        pages: OfflinePageStore,
        pins: PinStore,
        network: NetworkMonitor,
        config: SyncConfig | None = None,
    ) -> None:
        self.documents = documents
        self.pages = pages
        self.pins = pins
        self.network = network
        self.config = config or SyncConfig()
        self.status_changed: EventChannel[OfflineStatus] = EventChannel("offline-status")
        self._sessions: dict[str, _Session] = {}

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def subscribe(self, callback: Callable[[OfflineStatus], None]) -> Callable[[], None]:
        """Register a status observer; returns the unsubscribe handle."""
        return self.status_changed.subscribe(callback)

    def status(self, document_id: str) -> OfflineStatus:
        return self._session(document_id).status

    def bootstrap(self, document_id: str) -> OfflineStatus:
        """Re-derive and publish the status from the pin and page stores."""
        session = self._session(document_id)
        pinned = self.pins.is_pinned(document_id)
        available = self.pages.has_local_copy(document_id)
        phase = session.status.phase
        if not self._has_live_task(session):
            phase = OfflinePhase.READY if pinned and available else OfflinePhase.IDLE
        return self._publish(session, pinned=pinned, available=available, phase=phase)

    @property
    def running_tasks(self) -> int:
        """Number of background tasks (live or stale) that have not finished."""
        count = 0
        for session in self._sessions.values():
            if session.task is not None and not session.task.done():
                count += 1
            count += sum(1 for t in session.stale_tasks if not t.done())
        return count

    # ------------------------------------------------------------------ #
    # User actions
    # ------------------------------------------------------------------ #

    def enable(self, document_id: str) -> Result[OfflineStatus, str]:
        """Pin ``document_id`` and start a fresh monitor/download run."""
        try:
            self.pins.set_pinned(document_id, True)
        except StorageError as exc:
            logger.warning("Could not pin %s: %s", document_id, exc)
            return err("Could not save the offline setting on this device.")

        session = self._session(document_id)
        session.last_auto_start = None
        available = self.pages.has_local_copy(document_id)
        if available:
            self._cancel(session, hard=False)
            status = self._publish(
                session,
                pinned=True,
                available=True,
                phase=OfflinePhase.READY,
                message=None,
                progress_bytes=None,
                progress_label=None,
            )
            return ok(status)

        self._publish(session, pinned=True, available=False, phase=OfflinePhase.IDLE, message=None)
        self._start(document_id, session, force=False)
        return ok(session.status)

    def disable(self, document_id: str) -> Result[OfflineStatus, str]:
        """Unpin, cancel any run, and delete the local copy."""
        session = self._session(document_id)
        try:
            self.pins.set_pinned(document_id, False)
        except StorageError as exc:
            logger.warning("Could not unpin %s: %s", document_id, exc)
            return err("Could not save the offline setting on this device.")

        self._cancel(session, hard=True)
        self.pages.delete(document_id)
        status = self._publish(
            session,
            pinned=False,
            available=False,
            phase=OfflinePhase.IDLE,
            message=None,
            progress_bytes=None,
            progress_label=None,
            availability_token=session.status.availability_token + 1,
        )
        return ok(status)

    def retry(self, document_id: str) -> Result[OfflineStatus, str]:
        """User-initiated "Try again": restart the run, ignoring the auto-retry cooldown."""
        if not self.pins.is_pinned(document_id):
            return err("Document is not kept offline.")
        session = self._session(document_id)
        if self._has_live_task(session):
            return ok(session.status)
        session.last_auto_start = None
        if self.pages.has_local_copy(document_id):
            status = self._publish(
                session, pinned=True, available=True, phase=OfflinePhase.READY
            )
            return ok(status)
        self._publish(session, pinned=True, available=False, phase=OfflinePhase.IDLE, message=None)
        self._start(document_id, session, force=False)
        return ok(session.status)

    def ensure_current(self, document_id: str, expected_checksum: str | None) -> bool:
        """Re-download a pinned document whose cached checksum went stale.

        Returns True when a new run was started.
        """
        if not expected_checksum or not self.pins.is_pinned(document_id):
            return False
        manifest = self.pages.load_manifest(document_id)
        if manifest is not None and manifest.matches(expected_checksum):
            return False
        session = self._session(document_id)
        logger.info("Cached copy of %s is stale; re-downloading", document_id)
        self._start(document_id, session, force=True)
        return True

    def prune(self) -> list[str]:
        """Reclaim storage held by documents that are no longer pinned."""
        return self.pages.prune_unpinned(self.pins.pinned_ids())

    # ------------------------------------------------------------------ #
    # Triggers
    # ------------------------------------------------------------------ #

    def resume_pinned(self) -> None:
        """Start monitors for every pinned document (app launch)."""
        for document_id in sorted(self.pins.pinned_ids()):
            session = self._session(document_id)
            if self._has_live_task(session):
                continue
            if self.pages.has_local_copy(document_id):
                self._publish(session, pinned=True, available=True, phase=OfflinePhase.READY)
                continue
            self._publish(session, pinned=True, available=False, phase=OfflinePhase.IDLE)
            self._start(document_id, session, force=False)

    def on_network_change(self) -> list[str]:
        """Auto-retry pinned documents whose last run gave up; returns restarted ids.

        Terminal job failures are not retried. Each document is restarted at
        most once per ``auto_download_cooldown`` seconds.
        """
        if not self._network_allows_download():
            return []
        now = asyncio.get_running_loop().time()
        restarted: list[str] = []
        for document_id, session in self._sessions.items():
            if session.status.phase not in (OfflinePhase.IDLE, OfflinePhase.RETRY):
                continue
            if self._has_live_task(session) or not self.pins.is_pinned(document_id):
                continue
            if self.pages.has_local_copy(document_id):
                continue
            last = session.last_auto_start
            if last is not None and now - last < self.config.auto_download_cooldown:
                continue
            session.last_auto_start = now
            self._start(document_id, session, force=False)
            restarted.append(document_id)
        return restarted

    async def wait(self, document_id: str) -> OfflineStatus:
        """Wait for the live run of ``document_id`` (if any) to settle."""
        session = self._session(document_id)
        task = session.task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return session.status

    async def shutdown(self) -> None:
        """Invalidate every run and wait for all background tasks to finish."""
        tasks: list[asyncio.Task[None]] = []
        for session in self._sessions.values():
            if session.task is not None:
                tasks.append(session.task)
            tasks.extend(session.stale_tasks)
            self._cancel(session, hard=True)
            for stale in session.stale_tasks:
                stale.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Background run
    # ------------------------------------------------------------------ #

    async def _monitor(self, document_id: str, generation: int, force: bool) -> None:
        while self._is_live(document_id, generation):
            if not force and self.pages.has_local_copy(document_id):
                session = self._session(document_id)
                self._publish(
                    session,
                    available=True,
                    phase=OfflinePhase.READY,
                    message=None,
                    availability_token=session.status.availability_token + 1,
                )
                logger.debug("Local copy of %s present; monitor exits", document_id)
                return
            if self._network_allows_download():
                await self._download(document_id, generation)
                return
            await asyncio.sleep(self.config.monitor_interval)

    async def _download(self, document_id: str, generation: int) -> None:
        session = self._session(document_id)
        self._publish(
            session,
            phase=OfflinePhase.DOWNLOADING,
            message=MESSAGE_DOWNLOADING,
            progress_bytes=None,
            progress_label=MESSAGE_DOWNLOADING,
        )
        logger.info("Downloading offline copy of %s (generation %d)", document_id, generation)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.poll_timeout
        while True:
            if not self._is_live(document_id, generation):
                return
            job = await self._fetch_job(document_id)
            if not self._is_live(document_id, generation):
                logger.debug("Late result for %s dropped (generation %d)", document_id, generation)
                return

            if job is not None and self._apply_job(document_id, session, job):
                return
            if loop.time() >= deadline:
                break
            await asyncio.sleep(self.config.poll_interval)

        logger.info("Offline download of %s timed out", document_id)
        self._publish(
            session,
            phase=OfflinePhase.RETRY,
            message=MESSAGE_TRY_AGAIN,
            progress_label=None,
        )

    async def _fetch_job(self, document_id: str) -> OptimizedDocumentJob | None:
        try:
            return await self.documents.get_optimized_document(document_id)
        except (ShelfSyncError, ValidationError) as exc:
            logger.info("Polling %s failed, will retry: %s", document_id, exc)
            return None

    def _apply_job(self, document_id: str, session: _Session, job: OptimizedDocumentJob) -> bool:
        """Record one poll result; return True when the run is finished."""
        session.job = job
        estimate = job.estimated_bytes()
        self._publish(
            session,
            progress_bytes=estimate,
            progress_label=(
                format_progress_mb(estimate) if estimate is not None else MESSAGE_DOWNLOADING
            ),
        )

        if job.pages:
            saved = self.pages.save(document_id, job.pages, job.optimized_version, job.checksum)
            if saved.is_err():
                if saved.unwrap_err().disk_full:
                    self._publish(
                        session,
                        phase=OfflinePhase.STORAGE_FULL,
                        message=MESSAGE_STORAGE_FULL,
                        progress_label=None,
                    )
                    return True
            else:
                self._publish(
                    session,
                    available=True,
                    availability_token=session.status.availability_token + 1,
                )
                if job.processing_status is ProcessingStatus.READY:
                    self._publish(
                        session,
                        phase=OfflinePhase.READY,
                        message=None,
                        progress_label=None,
                    )
                    logger.info(
                        "Offline copy of %s is complete (%d pages)", document_id, job.total_pages
                    )
                    return True

        if job.processing_status is ProcessingStatus.FAILED or (
            job.processing_status is ProcessingStatus.READY and not job.pages
        ):
            logger.warning("Server could not produce an offline copy of %s", document_id)
            self._publish(
                session,
                phase=OfflinePhase.FAILED,
                message=MESSAGE_FAILED,
                progress_label=None,
            )
            return True
        return False

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _session(self, document_id: str) -> _Session:
        session = self._sessions.get(document_id)
        if session is None:
            session = _Session(status=OfflineStatus(document_id=document_id))
            self._sessions[document_id] = session
        return session

    def _start(self, document_id: str, session: _Session, *, force: bool) -> None:
        self._cancel(session, hard=False)
        generation = session.generation
        task = asyncio.get_running_loop().create_task(
            self._monitor(document_id, generation, force),
            name=f"offline-{document_id}-g{generation}",
        )
        session.task = task

    def _cancel(self, session: _Session, *, hard: bool) -> None:
        """Invalidate the current generation; ``hard`` also cancels the task."""
        session.generation += 1
        task = session.task
        session.task = None
        if task is None or task.done():
            return
        if hard:
            task.cancel()
        session.stale_tasks.add(task)
        task.add_done_callback(session.stale_tasks.discard)

    def _is_live(self, document_id: str, generation: int) -> bool:
        session = self._sessions.get(document_id)
        return (
            session is not None
            and session.generation == generation
            and self.pins.is_pinned(document_id)
        )

    def _has_live_task(self, session: _Session) -> bool:
        return session.task is not None and not session.task.done()

    def _network_allows_download(self) -> bool:
        if not self.network.is_online:
            return False
        return self.network.is_unmetered or not self.config.require_unmetered

    def _publish(self, session: _Session, **changes: object) -> OfflineStatus:
        session.status = session.status.model_copy(update=changes)
        self.status_changed.emit(session.status)
        return session.status


__all__ = ["OfflineSyncCoordinator"]
