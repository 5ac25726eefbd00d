from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from qoverlay.ids import album_ref_to_id
from qoverlay.models import Album, ListedAsset


class _Output(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class MediaItemOutput(_Output):
    id: str
    uri: str
    name: str
    type: str
    size: int
    date_added: int
    date_modified: int
    width: int | None = None
    height: int | None = None
    duration: int | None = None
    thumbnail_uri: str | None = None
    metadata: dict[str, Any] = {}


class AlbumOutput(_Output):
    id: str
    name: str
    type: str
    cover_uri: str | None = None
    media_count: int
    last_modified: int | None = None
    metadata: dict[str, Any] = {}


def media_item_output(item: ListedAsset) -> MediaItemOutput:
    asset = item.asset
    return MediaItemOutput(
        id=asset.id,
        uri=item.uri,
        name=asset.name,
        type=asset.kind.value,
        size=asset.size,
        date_added=asset.date_added,
        date_modified=asset.date_modified,
        width=asset.width,
        height=asset.height,
        duration=asset.duration,
        thumbnail_uri=item.thumbnail_path,
        metadata=dict(item.metadata or {}),
    )


def album_output(album: Album) -> AlbumOutput:
    return AlbumOutput(
        id=album_ref_to_id(album.ref),
        name=album.name,
        type=album.type.value,
        cover_uri=album.cover_uri,
        media_count=album.media_count,
        last_modified=album.last_modified,
        metadata=dict(album.metadata or {}),
    )
