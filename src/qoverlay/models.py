from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"

    @property
    def mime_prefix(self) -> str:
        return f"{self.value}/"

    @classmethod
    def from_mime(cls, mime_type: str | None) -> MediaKind:
        if mime_type and mime_type.lower().startswith("video/"):
            return cls.VIDEO
        return cls.IMAGE


class ViewMode(str, Enum):
    NORMAL = "normal"
    TRASHED_ONLY = "trashed"
    HIDDEN_ONLY = "hidden"


class AlbumType(str, Enum):
    SYSTEM = "system"
    CUSTOM = "custom"
    HIDDEN = "hidden"
    RECYCLE_BIN = "recycle_bin"


@dataclass(slots=True)
class Asset:
    id: str
    name: str
    mime_type: str
    size: int
    date_added: int
    date_modified: int
    width: int | None = None
    height: int | None = None
    duration: int | None = None
    bucket_id: str | None = None
    bucket_name: str | None = None
    data_path: str | None = None

    @property
    def kind(self) -> MediaKind:
        return MediaKind.from_mime(self.mime_type)


@dataclass(slots=True, frozen=True)
class BucketAlbum:
    bucket_id: str


class SyntheticAlbum(Enum):
    FAVORITES = "-1"
    HIDDEN = "-2"
    RECYCLE_BIN = "-3"


AlbumRef = Union[BucketAlbum, SyntheticAlbum]


@dataclass(slots=True)
class Album:
    ref: AlbumRef
    name: str
    type: AlbumType
    cover_uri: str | None
    media_count: int
    last_modified: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class ListedAsset:
    asset: Asset
    uri: str
    thumbnail_path: str | None
    metadata: dict[str, Any] | None = None
