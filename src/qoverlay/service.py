from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from qoverlay.albums import AlbumAggregator
from qoverlay.catalog.base import AssetCatalog
from qoverlay.catalog.scanner import scan_roots
from qoverlay.catalog.sqlite import SqliteCatalog
from qoverlay.config import AppConfig
from qoverlay.errors import CatalogAccessError, InvalidArgument, OverlayError
from qoverlay.ids import normalize_asset_id
from qoverlay.media.decoder import ImageDecoder, PillowDecoder
from qoverlay.models import MediaKind, ViewMode
from qoverlay.output_models import album_output, media_item_output
from qoverlay.overlay import AssetQuery, OverlayFilter
from qoverlay.result import Result
from qoverlay.state.store import JsonSideStateStore, SideStateStore
from qoverlay.thumbnails import ThumbnailCache
from qoverlay.util.time import now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _media_kind(value: MediaKind | str | None) -> MediaKind | None:
    if value is None or isinstance(value, MediaKind):
        return value
    try:
        return MediaKind(value.strip().lower())
    except ValueError as exc:
        raise InvalidArgument(f"unknown media type: {value}") from exc


def _view_mode(value: ViewMode | str) -> ViewMode:
    if isinstance(value, ViewMode):
        return value
    try:
        return ViewMode(value.strip().lower())
    except ValueError as exc:
        raise InvalidArgument(f"unknown view mode: {value}") from exc


class OverlayService:
    def __init__(
        self,
        config: AppConfig,
        catalog: AssetCatalog | None = None,
        store: SideStateStore | None = None,
        decoder: ImageDecoder | None = None,
    ):
        self.config = config
        self.catalog = catalog if catalog is not None else SqliteCatalog(config.catalog.db_path)
        self.store = store if store is not None else JsonSideStateStore(config.namespace_dir)
        thumbs = config.thumbnails
        self.decoder = decoder or PillowDecoder(
            ffmpeg_path=thumbs.ffmpeg_path,
            thumbnail_at_size=thumbs.video_thumbnail_at_size,
        )
        self.thumbnails = ThumbnailCache(
            thumbs.cache_dir,
            self.catalog,
            self.decoder,
            sample_factor=thumbs.sample_factor,
            video_size=thumbs.video_size,
            quality=thumbs.quality,
        )
        self.overlay = OverlayFilter(self.catalog, thumbnails=self._thumbnail_path)
        self.albums = AlbumAggregator(self.catalog)

    def _thumbnail_path(self, uri: str, kind: MediaKind) -> str | None:
        path = self.thumbnails.get_or_create(uri, kind)
        return str(path) if path is not None else None

    def _delete(self, key: str) -> int:
        try:
            return self.catalog.delete(key)
        except OverlayError:
            raise
        except Exception as exc:
            raise CatalogAccessError(f"delete of {key} failed: {exc}") from exc

    def _run(self, op: str, fn: Callable[[], T]) -> Result[T]:
        try:
            return Result.success(fn())
        except OverlayError as exc:
            logger.warning("%s failed: %s", op, exc)
            return Result.failure(exc)
        except Exception as exc:
            logger.exception("%s failed unexpectedly", op)
            return Result.failure(exc)

    def list_assets(
        self,
        album_id: str | None = None,
        media_kind: MediaKind | str | None = None,
        limit: int | None = None,
        offset: int = 0,
        view_mode: ViewMode | str = ViewMode.NORMAL,
        search_query: str | None = None,
    ) -> Result[list[dict[str, Any]]]:
        def _list() -> list[dict[str, Any]]:
            query = AssetQuery(
                album_id=album_id,
                media_kind=_media_kind(media_kind),
                limit=self.config.query.default_limit if limit is None else int(limit),
                offset=int(offset),
                view_mode=_view_mode(view_mode),
                search_query=search_query,
            )
            trash = self.store.load_trash()
            hidden = self.store.load_hidden()
            return [media_item_output(item).as_dict() for item in self.overlay.page(query, trash, hidden)]

        return self._run("list_assets", _list)

    def list_albums(self) -> Result[list[dict[str, Any]]]:
        def _albums() -> list[dict[str, Any]]:
            trash = self.store.load_trash()
            hidden = self.store.load_hidden()
            return [album_output(album).as_dict() for album in self.albums.aggregate(trash, hidden)]

        return self._run("list_albums", _albums)

    def trash(self, asset_id: Any) -> Result[bool]:
        def _trash() -> bool:
            key = normalize_asset_id(asset_id)
            records = self.store.load_trash()
            records[key] = now_ms()
            self.store.save_trash(records)
            return True

        return self._run("trash", _trash)

    def restore(self, asset_id: Any) -> Result[bool]:
        def _restore() -> bool:
            key = normalize_asset_id(asset_id)
            records = self.store.load_trash()
            records.pop(key, None)
            self.store.save_trash(records)
            return True

        return self._run("restore", _restore)

    def purge(self, asset_id: Any) -> Result[bool]:
        def _purge() -> bool:
            key = normalize_asset_id(asset_id)
            deleted = self._delete(key) > 0
            if deleted:
                records = self.store.load_trash()
                records.pop(key, None)
                self.store.save_trash(records)
            else:
                logger.info("catalog deleted nothing for %s; trash entry kept", key)
            return deleted

        return self._run("purge", _purge)

    def empty_trash(self) -> Result[bool]:
        def _empty() -> bool:
            records = self.store.load_trash()
            all_deleted = True
            for key in records:
                try:
                    if self._delete(key) <= 0:
                        all_deleted = False
                        logger.warning("catalog deleted nothing for %s", key)
                except OverlayError as exc:
                    all_deleted = False
                    logger.warning("delete failed for %s: %s", key, exc)
            # Cleared even when some deletes failed; those ids drop out of the recycle bin.
            self.store.save_trash({})
            return all_deleted

        return self._run("empty_trash", _empty)

    def hide(self, asset_id: Any) -> Result[bool]:
        def _hide() -> bool:
            key = normalize_asset_id(asset_id)
            hidden = self.store.load_hidden()
            hidden.add(key)
            self.store.save_hidden(hidden)
            return True

        return self._run("hide", _hide)

    def unhide(self, asset_id: Any) -> Result[bool]:
        def _unhide() -> bool:
            key = normalize_asset_id(asset_id)
            hidden = self.store.load_hidden()
            hidden.discard(key)
            self.store.save_hidden(hidden)
            return True

        return self._run("unhide", _unhide)

    def thumbnail(self, uri: str | None, width: int = 200, height: int = 200) -> Result[bytes]:
        def _thumbnail() -> bytes:
            if not uri:
                raise InvalidArgument("URI is required")
            if width <= 0 or height <= 0:
                raise InvalidArgument(f"invalid thumbnail size {width}x{height}")
            data = self.thumbnails.render(uri, width, height)
            if data is None:
                raise OverlayError("Failed to load thumbnail")
            return data

        return self._run("thumbnail", _thumbnail)

    def media_bytes(self, uri: str | None) -> Result[bytes]:
        def _bytes() -> bytes:
            if not uri:
                raise InvalidArgument("URI is required")
            return self.catalog.open_bytes(uri)

        return self._run("media_bytes", _bytes)

    def update(self) -> dict[str, Any]:
        if not isinstance(self.catalog, SqliteCatalog):
            raise OverlayError("update requires the bundled SQLite catalog")
        stats = scan_roots(self.catalog, self.config.catalog.roots)
        return {
            "added": stats.added,
            "changed": stats.changed,
            "deleted": stats.deleted,
            "scanned": stats.scanned,
        }

    def status(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if isinstance(self.catalog, SqliteCatalog):
            counts = self.catalog.counts()
            out["images"] = counts["image"]
            out["videos"] = counts["video"]
            out["catalog_path"] = str(self.catalog.db.path)
        out["trashed"] = len(self.store.load_trash())
        out["hidden"] = len(self.store.load_hidden())
        out["thumbnail_dir"] = str(self.thumbnails.cache_dir)
        out["state_dir"] = str(self.config.namespace_dir)
        return out
