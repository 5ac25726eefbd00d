from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Protocol

from qoverlay.models import Asset, MediaKind


@dataclass(slots=True)
class CatalogQuery:
    """Read request against the catalog. Results are ordered by date added, newest first."""

    partition: MediaKind | None = None
    bucket_id: str | None = None
    mime_prefix: str | None = None
    name_contains: str | None = None
    include_ids: frozenset[str] | None = None
    exclude_ids: frozenset[str] = field(default_factory=frozenset)


class AssetCatalog(Protocol):
    def query(self, request: CatalogQuery) -> Iterator[Asset]: ...

    def delete(self, asset_id: str) -> int: ...

    def open_bytes(self, uri: str) -> bytes: ...

    def resolve_path(self, uri: str) -> Path | None: ...
