"""Tests for the checksum-gated offline page cache."""

from __future__ import annotations

import errno
from pathlib import Path
from typing import Any

import pytest

from shelfsync.core.errors import StorageError
from shelfsync.storage import offline_pages
from shelfsync.storage.offline_pages import MANIFEST_FILE, PAGES_FILE, OfflinePageStore

PAGES = ["first page", " ", "third page\n\nwith two blocks", "ünïcödé"]


def test_round_trip_with_matching_checksum(page_store: OfflinePageStore) -> None:
    saved = page_store.save("doc-1", PAGES, version=2, checksum="abc")
    assert saved.is_ok()
    assert saved.unwrap().version == 2

    assert page_store.load("doc-1", "abc") == PAGES
    assert page_store.load("doc-1", None) == PAGES
    assert page_store.load("doc-1", "") == PAGES
    assert page_store.has_local_copy("doc-1")


def test_checksum_mismatch_is_a_cache_miss(page_store: OfflinePageStore) -> None:
    page_store.save("doc-1", PAGES, version=1, checksum="abc")
    assert page_store.load("doc-1", "other") is None


def test_version_below_one_is_clamped(page_store: OfflinePageStore) -> None:
    manifest = page_store.save("doc-1", PAGES, version=0, checksum=None).unwrap()
    assert manifest.version == 1
    assert manifest.checksum is None


def test_save_overwrites_previous_copy(page_store: OfflinePageStore) -> None:
    page_store.save("doc-1", ["old"], version=1, checksum="v1")
    page_store.save("doc-1", ["new", "pages"], version=2, checksum="v2")
    assert page_store.load("doc-1", "v2") == ["new", "pages"]
    assert page_store.load("doc-1", "v1") is None


def test_delete_removes_copy_and_is_idempotent(page_store: OfflinePageStore) -> None:
    page_store.save("doc-1", PAGES, version=1, checksum="abc")
    page_store.delete("doc-1")
    assert not page_store.has_local_copy("doc-1")
    assert page_store.load("doc-1", "abc") is None
    page_store.delete("doc-1")
    page_store.delete("never-saved")


def test_manifest_without_payload_is_absent(page_store: OfflinePageStore) -> None:
    page_store.save("doc-1", PAGES, version=1, checksum="abc")
    (page_store.base_dir / "doc-1" / PAGES_FILE).unlink()
    assert page_store.load_manifest("doc-1") is None
    assert not page_store.has_local_copy("doc-1")
    assert page_store.load("doc-1", None) is None


def test_corrupt_files_are_a_cache_miss(page_store: OfflinePageStore) -> None:
    page_store.save("doc-1", PAGES, version=1, checksum="abc")
    (page_store.base_dir / "doc-1" / PAGES_FILE).write_text("{not json", encoding="utf-8")
    assert page_store.load("doc-1", "abc") is None

    page_store.save("doc-2", PAGES, version=1, checksum="abc")
    (page_store.base_dir / "doc-2" / MANIFEST_FILE).write_text("[]", encoding="utf-8")
    assert page_store.load("doc-2", None) is None


def test_prune_keeps_only_pinned(page_store: OfflinePageStore) -> None:
    for doc_id in ("A", "B", "C"):
        page_store.save(doc_id, [doc_id], version=1, checksum=None)

    removed = page_store.prune_unpinned({"A"})

    assert sorted(removed) == ["B", "C"]
    assert page_store.cached_ids() == ["A"]
    assert page_store.load("A") == ["A"]


def test_prune_on_empty_cache(tmp_path: Path) -> None:
    store = OfflinePageStore(tmp_path / "missing")
    assert store.prune_unpinned(set()) == []
    assert store.cached_ids() == []


def test_invalid_document_id_is_rejected(page_store: OfflinePageStore) -> None:
    with pytest.raises(ValueError):
        page_store.load("../escape")


def test_disk_full_comes_back_as_err(page_store: OfflinePageStore, monkeypatch: Any) -> None:
    """An ENOSPC during save is reported, not raised."""

    def _full(path: Path, adapter: Any, value: Any) -> None:
        raise StorageError.from_os_error(f"write {path}", OSError(errno.ENOSPC, "No space"))

    monkeypatch.setattr(offline_pages, "write_json_atomic", _full)

    result = page_store.save("doc-1", PAGES, version=1, checksum="abc")

    assert result.is_err()
    assert result.unwrap_err().disk_full
    assert not page_store.has_local_copy("doc-1")


def test_failed_manifest_write_never_serves_new_pages_as_old(
    page_store: OfflinePageStore, monkeypatch: Any
) -> None:
    """A save that dies after the payload write leaves a miss, not a mismatched hit."""
    page_store.save("d1", ["old 1", "old 2"], version=1, checksum="old")
    real_write = offline_pages.write_json_atomic

    def _manifest_full(path: Path, adapter: Any, value: Any) -> None:
        if path.name == MANIFEST_FILE:
            raise StorageError.from_os_error(f"write {path}", OSError(errno.ENOSPC, "No space"))
        real_write(path, adapter, value)

    monkeypatch.setattr(offline_pages, "write_json_atomic", _manifest_full)

    result = page_store.save("d1", ["new 1"], version=2, checksum="new")

    assert result.is_err()
    assert page_store.load("d1", "old") is None
    assert page_store.load("d1", "new") is None
    assert page_store.load_manifest("d1") is None
