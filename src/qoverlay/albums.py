from __future__ import annotations

from dataclasses import dataclass
import logging

from qoverlay.catalog.base import AssetCatalog, CatalogQuery
from qoverlay.errors import CatalogAccessError
from qoverlay.ids import content_uri
from qoverlay.models import Album, AlbumType, BucketAlbum, MediaKind, SyntheticAlbum

logger = logging.getLogger(__name__)

UNKNOWN_BUCKET = "Unknown"


@dataclass(slots=True)
class _BucketStats:
    name: str
    cover_uri: str
    count: int = 0
    last_modified: int = 0


def synthetic_albums(trash: dict[str, int], hidden: set[str]) -> list[Album]:
    return [
        Album(ref=SyntheticAlbum.FAVORITES, name="Favorites", type=AlbumType.CUSTOM, cover_uri=None, media_count=0),
        Album(ref=SyntheticAlbum.HIDDEN, name="Hidden", type=AlbumType.HIDDEN, cover_uri=None, media_count=len(hidden)),
        Album(
            ref=SyntheticAlbum.RECYCLE_BIN,
            name="Recycle Bin",
            type=AlbumType.RECYCLE_BIN,
            cover_uri=None,
            media_count=len(trash),
        ),
    ]


class AlbumAggregator:
    def __init__(self, catalog: AssetCatalog):
        self.catalog = catalog

    def aggregate(self, trash: dict[str, int], hidden: set[str]) -> list[Album]:
        excluded = frozenset(trash) | frozenset(hidden)
        buckets: dict[str, _BucketStats] = {}

        for partition in (MediaKind.IMAGE, MediaKind.VIDEO):
            try:
                for asset in self.catalog.query(CatalogQuery(partition=partition, exclude_ids=excluded)):
                    if asset.id in excluded:
                        continue
                    bucket_id = asset.bucket_id or UNKNOWN_BUCKET
                    stats = buckets.get(bucket_id)
                    if stats is None:
                        cover = asset.data_path or content_uri(partition, asset.id)
                        stats = _BucketStats(name=UNKNOWN_BUCKET, cover_uri=cover)
                        buckets[bucket_id] = stats
                    stats.count += 1
                    stats.name = asset.bucket_name or UNKNOWN_BUCKET
                    if asset.date_modified > stats.last_modified:
                        stats.last_modified = asset.date_modified
            except CatalogAccessError:
                raise
            except Exception as exc:
                raise CatalogAccessError(f"{partition.value} scan failed: {exc}") from exc

        logger.debug("aggregated %d buckets (%d ids excluded)", len(buckets), len(excluded))
        albums = [
            Album(
                ref=BucketAlbum(bucket_id),
                name=stats.name,
                type=AlbumType.SYSTEM,
                cover_uri=stats.cover_uri,
                media_count=stats.count,
                last_modified=stats.last_modified or None,
            )
            for bucket_id, stats in buckets.items()
        ]
        albums.extend(synthetic_albums(trash, hidden))
        return albums
