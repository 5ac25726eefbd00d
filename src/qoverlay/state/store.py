"""Persistence for the trashed/hidden overlay sets.

Both sets are stored as whole documents. Callers load, mutate in memory and
save the full document back; there is no locking, so two concurrent mutations
of the same set race and the last writer wins.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from qoverlay.errors import StorageCorruption
from qoverlay.util.fsio import atomic_write_text

logger = logging.getLogger(__name__)

TRASHED_KEY = "trashed_items"
HIDDEN_KEY = "hidden_items"


class SideStateStore(Protocol):
    def load_trash(self) -> dict[str, int]: ...

    def save_trash(self, records: dict[str, int]) -> None: ...

    def load_hidden(self) -> set[str]: ...

    def save_hidden(self, ids: set[str]) -> None: ...


def _is_scalar_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def parse_trash_document(raw: str) -> dict[str, int]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageCorruption(f"{TRASHED_KEY} is not valid JSON") from exc
    if not isinstance(data, dict):
        raise StorageCorruption(f"{TRASHED_KEY} must be a JSON object")

    out: dict[str, int] = {}
    for key, value in data.items():
        if isinstance(value, bool):
            logger.warning("skipping trash entry %r: invalid timestamp %r", key, value)
            continue
        try:
            out[str(key)] = int(value)
        except (TypeError, ValueError):
            logger.warning("skipping trash entry %r: invalid timestamp %r", key, value)
    return out


def parse_hidden_document(raw: str) -> set[str]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageCorruption(f"{HIDDEN_KEY} is not valid JSON") from exc
    if not isinstance(data, list):
        raise StorageCorruption(f"{HIDDEN_KEY} must be a JSON array")

    out: set[str] = set()
    for value in data:
        if not _is_scalar_id(value):
            logger.warning("skipping hidden entry %r", value)
            continue
        out.add(str(value))
    return out


def dump_trash_document(records: dict[str, int]) -> str:
    return json.dumps({str(k): str(int(v)) for k, v in records.items()}, sort_keys=True)


def dump_hidden_document(ids: set[str]) -> str:
    return json.dumps(sorted(str(i) for i in ids))


class MemorySideStateStore:
    def __init__(self, trash: dict[str, int] | None = None, hidden: set[str] | None = None):
        self._trash = dict(trash or {})
        self._hidden = set(hidden or ())

    def load_trash(self) -> dict[str, int]:
        return dict(self._trash)

    def save_trash(self, records: dict[str, int]) -> None:
        self._trash = dict(records)

    def load_hidden(self) -> set[str]:
        return set(self._hidden)

    def save_hidden(self, ids: set[str]) -> None:
        self._hidden = set(ids)


class JsonSideStateStore:
    """One JSON document per set inside an application-scoped directory."""

    def __init__(self, namespace_dir: Path):
        self.namespace_dir = namespace_dir
        self.namespace_dir.mkdir(parents=True, exist_ok=True)

    @property
    def trash_path(self) -> Path:
        return self.namespace_dir / f"{TRASHED_KEY}.json"

    @property
    def hidden_path(self) -> Path:
        return self.namespace_dir / f"{HIDDEN_KEY}.json"

    def _read(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def load_trash(self) -> dict[str, int]:
        raw = self._read(self.trash_path)
        if raw is None or not raw.strip():
            return {}
        try:
            return parse_trash_document(raw)
        except StorageCorruption as exc:
            logger.warning("treating %s as empty: %s", self.trash_path, exc)
            return {}

    def save_trash(self, records: dict[str, int]) -> None:
        atomic_write_text(self.trash_path, dump_trash_document(records))

    def load_hidden(self) -> set[str]:
        raw = self._read(self.hidden_path)
        if raw is None or not raw.strip():
            return set()
        try:
            return parse_hidden_document(raw)
        except StorageCorruption as exc:
            logger.warning("treating %s as empty: %s", self.hidden_path, exc)
            return set()

    def save_hidden(self, ids: set[str]) -> None:
        atomic_write_text(self.hidden_path, dump_hidden_document(ids))
