"""Atomic JSON file helpers shared by every store.

Writes go to a temporary sibling file which is then ``os.replace``-d over the
target, so readers only ever observe the old or the new content. Both helpers
raise `StorageError`; each store decides whether to swallow it.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from shelfsync.core.errors import StorageError


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` atomically, creating parent dirs as needed."""
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise StorageError.from_os_error(f"write {path}", exc) from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


def write_json_atomic(path: Path, adapter: TypeAdapter[Any], value: Any) -> None:
    """Serialize ``value`` through ``adapter`` and write it atomically."""
    payload = adapter.dump_python(value, mode="json")
    text = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
    write_bytes_atomic(path, text.encode("utf-8"))


def read_json(path: Path, adapter: TypeAdapter[Any]) -> Any:
    """Load and validate ``path``; raise `StorageError` when missing or malformed."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise StorageError.from_os_error(f"read {path}", exc) from exc
    try:
        return adapter.validate_json(raw)
    except ValidationError as exc:
        raise StorageError(f"decode {path}: {exc.error_count()} validation error(s)") from exc


__all__ = ["write_bytes_atomic", "write_json_atomic", "read_json"]
