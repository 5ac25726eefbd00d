"""Atomic file writes shared by the side-state store and the thumbnail cache."""

from __future__ import annotations

import os
from pathlib import Path
import time
import uuid


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write *data* to *path* so readers see either the old file or the new one."""

    path.parent.mkdir(parents=True, exist_ok=True)
    # Unique temp name: two workers may render the same thumbnail concurrently.
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with tmp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        _replace_with_retry(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def atomic_write_text(path: Path, data: str) -> None:
    atomic_write_bytes(path, data.encode("utf-8"))


def _replace_with_retry(src: Path, dst: Path, attempts: int = 5) -> None:
    # Windows may briefly lock the destination (indexers, antivirus).
    for attempt in range(attempts):
        try:
            src.replace(dst)
            return
        except PermissionError:
            if attempt == attempts - 1:
                raise
            time.sleep(0.05 * (attempt + 1))
