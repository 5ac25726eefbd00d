"""Merge trashed/hidden side-state into catalog listings.

Every filter (view membership, bucket, media kind, name search) is applied
before the page window, so ``offset``/``limit`` count visible assets only.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import islice
from typing import Any, Callable, Iterable, Iterator

from qoverlay.catalog.base import AssetCatalog, CatalogQuery
from qoverlay.errors import CatalogAccessError, InvalidArgument
from qoverlay.ids import content_uri, parse_album_ref
from qoverlay.models import Asset, BucketAlbum, ListedAsset, MediaKind, ViewMode

ThumbnailResolver = Callable[[str, MediaKind], "str | None"]


@dataclass(slots=True)
class AssetQuery:
    album_id: str | None = None
    media_kind: MediaKind | None = None
    limit: int = 50
    offset: int = 0
    view_mode: ViewMode = ViewMode.NORMAL
    search_query: str | None = None

    def validate(self) -> None:
        if self.limit < 0:
            raise InvalidArgument(f"limit must be >= 0, got {self.limit}")
        if self.offset < 0:
            raise InvalidArgument(f"offset must be >= 0, got {self.offset}")

    @property
    def bucket_id(self) -> str | None:
        ref = parse_album_ref(self.album_id)
        if isinstance(ref, BucketAlbum):
            return ref.bucket_id
        return None

    @property
    def needle(self) -> str | None:
        if not self.search_query:
            return None
        return self.search_query.casefold()


def membership(view_mode: ViewMode, trash: dict[str, int], hidden: set[str]) -> Callable[[str], bool]:
    if view_mode is ViewMode.TRASHED_ONLY:
        return lambda asset_id: asset_id in trash
    if view_mode is ViewMode.HIDDEN_ONLY:
        return lambda asset_id: asset_id in hidden
    return lambda asset_id: asset_id not in trash and asset_id not in hidden


def is_empty_view(view_mode: ViewMode, trash: dict[str, int], hidden: set[str]) -> bool:
    if view_mode is ViewMode.TRASHED_ONLY:
        return not trash
    if view_mode is ViewMode.HIDDEN_ONLY:
        return not hidden
    return False


def catalog_query(query: AssetQuery, trash: dict[str, int], hidden: set[str]) -> CatalogQuery:
    include: frozenset[str] | None = None
    exclude: frozenset[str] = frozenset()
    if query.view_mode is ViewMode.TRASHED_ONLY:
        include = frozenset(trash)
    elif query.view_mode is ViewMode.HIDDEN_ONLY:
        include = frozenset(hidden)
    else:
        exclude = frozenset(trash) | frozenset(hidden)

    name = query.search_query or None
    # SQL LOWER() folds ASCII only; other needles are matched in Python.
    if name is not None and not name.isascii():
        name = None

    return CatalogQuery(
        bucket_id=query.bucket_id,
        mime_prefix=query.media_kind.mime_prefix if query.media_kind else None,
        name_contains=name,
        include_ids=include,
        exclude_ids=exclude,
    )


def matching(entries: Iterable[Asset], query: AssetQuery, trash: dict[str, int], hidden: set[str]) -> Iterator[Asset]:
    is_member = membership(query.view_mode, trash, hidden)
    bucket_id = query.bucket_id
    needle = query.needle
    for asset in entries:
        if not is_member(asset.id):
            continue
        if bucket_id is not None and asset.bucket_id != bucket_id:
            continue
        if query.media_kind is not None and not asset.mime_type.lower().startswith(query.media_kind.mime_prefix):
            continue
        if needle is not None and needle not in asset.name.casefold():
            continue
        yield asset


def window(entries: Iterable[Asset], offset: int, limit: int) -> list[Asset]:
    if limit == 0:
        return []
    return list(islice(entries, offset, offset + limit))


def display_uri(asset: Asset) -> str:
    if asset.data_path:
        return asset.data_path
    return content_uri(asset.kind, asset.id)


class OverlayFilter:
    def __init__(self, catalog: AssetCatalog, thumbnails: ThumbnailResolver | None = None):
        self.catalog = catalog
        self.thumbnails = thumbnails

    def select(self, query: AssetQuery, trash: dict[str, int], hidden: set[str]) -> list[Asset]:
        query.validate()
        if is_empty_view(query.view_mode, trash, hidden):
            return []
        entries: Iterable[Asset] = ()
        try:
            entries = self.catalog.query(catalog_query(query, trash, hidden))
            return window(matching(entries, query, trash, hidden), query.offset, query.limit)
        except CatalogAccessError:
            raise
        except Exception as exc:
            raise CatalogAccessError(f"catalog query failed: {exc}") from exc
        finally:
            close = getattr(entries, "close", None)
            if close is not None:
                close()

    def page(self, query: AssetQuery, trash: dict[str, int], hidden: set[str]) -> list[ListedAsset]:
        out: list[ListedAsset] = []
        for asset in self.select(query, trash, hidden):
            thumb = None
            if self.thumbnails is not None:
                thumb = self.thumbnails(content_uri(asset.kind, asset.id), asset.kind)
            metadata: dict[str, Any] = {}
            if query.view_mode is ViewMode.TRASHED_ONLY:
                metadata = {"deletedAt": trash.get(asset.id, 0)}
            out.append(ListedAsset(asset=asset, uri=display_uri(asset), thumbnail_path=thumb, metadata=metadata))
        return out
