"""
Offline Page Store: durable, checksum-gated cache of optimized page payloads.

Layout
------
One directory per document under ``<data_dir>/offline_documents``::

    offline_documents/<document_id>/pages.json      # ordered list of page strings
    offline_documents/<document_id>/manifest.json   # CacheManifest

Write ordering
--------------
`save` removes the old ``manifest.json`` first, then writes ``pages.json`` and
finally the new ``manifest.json``, each through an atomic replace. A failure at
any step leaves no manifest, which reads as a cache miss. The read path only
trusts a manifest whose payload also exists, so a missing payload never
surfaces as a hit either.

Failure policy
--------------
Integrity problems (checksum mismatch, missing or undecodable files) are cache
misses, never errors. Local I/O failures are logged and swallowed: `save`
returns an ``Err`` instead of raising, the other mutators return nothing.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable, Sequence
from pathlib import Path

from pydantic import TypeAdapter

from shelfsync.core.contracts.cache import CacheManifest
from shelfsync.core.errors import StorageError
from shelfsync.core.result import Result, err, ok
from shelfsync.core.settings import get_logger

from ._files import read_json, write_json_atomic

logger = get_logger(__name__)

MANIFEST_FILE = "manifest.json"
PAGES_FILE = "pages.json"

_PAGES = TypeAdapter(list[str])
_MANIFEST = TypeAdapter(CacheManifest)


def _discard_manifest(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise StorageError.from_os_error(f"remove {path.name}", exc) from exc


class OfflinePageStore:
    """Per-document manifest + page payload cache rooted at ``base_dir``."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> OfflinePageStore:
        return cls(data_dir / "offline_documents")

    # ------------------------------------------------------------------ paths

    def _doc_dir(self, document_id: str) -> Path:
        if not document_id or "/" in document_id or document_id in {".", ".."}:
            raise ValueError(f"invalid document id: {document_id!r}")
        return self.base_dir / document_id

    def _paths(self, document_id: str) -> tuple[Path, Path]:
        doc_dir = self._doc_dir(document_id)
        return doc_dir / MANIFEST_FILE, doc_dir / PAGES_FILE

    # ------------------------------------------------------------------ write

    def save(
        self,
        document_id: str,
        pages: Sequence[str],
        version: int,
        checksum: str | None,
    ) -> Result[CacheManifest, StorageError]:
        """Persist ``pages`` and their manifest, replacing any previous copy.

        Returns
        -------
        Result[CacheManifest, StorageError]
            ``Ok(manifest)`` once both files are on disk; ``Err`` when either
            write failed (for example ``disk_full`` on ENOSPC).
        """
        manifest_path, pages_path = self._paths(document_id)
        manifest = CacheManifest(
            document_id=document_id,
            version=max(1, version),
            checksum=checksum or None,
        )
        try:
            _discard_manifest(manifest_path)
            write_json_atomic(pages_path, _PAGES, list(pages))
            write_json_atomic(manifest_path, _MANIFEST, manifest)
        except StorageError as exc:
            logger.warning("Offline save failed for %s: %s", document_id, exc)
            return err(exc)

        logger.debug(
            "Saved %d page(s) for %s (v%d)", len(pages), document_id, manifest.version
        )
        return ok(manifest)

    # ------------------------------------------------------------------- read

    def load_manifest(self, document_id: str) -> CacheManifest | None:
        """Return the manifest only when its page payload also exists."""
        manifest_path, pages_path = self._paths(document_id)
        if not manifest_path.is_file() or not pages_path.is_file():
            return None
        try:
            manifest: CacheManifest = read_json(manifest_path, _MANIFEST)
        except StorageError as exc:
            logger.debug("Unreadable manifest for %s: %s", document_id, exc)
            return None
        return manifest

    def load(self, document_id: str, expected_checksum: str | None = None) -> list[str] | None:
        """Return cached pages, or ``None`` on any kind of cache miss.

        A non-empty ``expected_checksum`` must equal the stored checksum;
        otherwise the copy is stale and the caller is expected to re-download.
        """
        manifest = self.load_manifest(document_id)
        if manifest is None:
            return None
        if not manifest.matches(expected_checksum):
            logger.debug("Checksum mismatch for %s; treating as cache miss", document_id)
            return None

        _, pages_path = self._paths(document_id)
        try:
            pages: list[str] = read_json(pages_path, _PAGES)
        except StorageError as exc:
            logger.debug("Unreadable pages for %s: %s", document_id, exc)
            return None
        return pages

    def has_local_copy(self, document_id: str) -> bool:
        """True iff a manifest exists whose payload also exists."""
        return self.load_manifest(document_id) is not None

    def cached_ids(self) -> list[str]:
        """Ids of every document directory currently on disk."""
        if not self.base_dir.is_dir():
            return []
        return sorted(child.name for child in self.base_dir.iterdir() if child.is_dir())

    # ----------------------------------------------------------------- delete

    def delete(self, document_id: str) -> None:
        """Remove both files for ``document_id``; absent documents are fine."""
        doc_dir = self._doc_dir(document_id)
        try:
            shutil.rmtree(doc_dir)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Failed to delete offline copy %s: %s", document_id, exc)

    def prune_unpinned(self, pinned: Iterable[str]) -> list[str]:
        """Delete every cached document not in ``pinned``; return the removed ids.

        Best-effort: a failure on one directory is logged and the sweep continues.
        """
        keep = set(pinned)
        removed: list[str] = []
        try:
            children = list(self.base_dir.iterdir())
        except FileNotFoundError:
            return removed
        except OSError as exc:
            logger.warning("Cannot list offline cache %s: %s", self.base_dir, exc)
            return removed

        for child in children:
            if child.name in keep:
                continue
            try:
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            except OSError as exc:
                logger.warning("Prune skipped %s: %s", child, exc)
                continue
            removed.append(child.name)

        if removed:
            logger.info("Pruned %d unpinned document(s) from the offline cache", len(removed))
        return removed


__all__ = ["OfflinePageStore", "MANIFEST_FILE", "PAGES_FILE"]
