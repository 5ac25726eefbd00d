from __future__ import annotations

import hashlib
from typing import Any

from qoverlay.errors import InvalidArgument
from qoverlay.models import AlbumRef, BucketAlbum, MediaKind, SyntheticAlbum

IMAGE_BASE_URI = "content://qoverlay/images/media"
VIDEO_BASE_URI = "content://qoverlay/video/media"

_SENTINELS = {s.value: s for s in SyntheticAlbum}


def normalize_asset_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        raise InvalidArgument("mediaId is required")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidArgument(f"invalid mediaId: {value}")
        value = int(value)
    text = str(value).strip()
    if not text:
        raise InvalidArgument("mediaId is required")
    return text


def parse_album_ref(album_id: Any) -> AlbumRef | None:
    if album_id is None:
        return None
    text = str(album_id).strip()
    if not text:
        return None
    sentinel = _SENTINELS.get(text)
    if sentinel is not None:
        return sentinel
    return BucketAlbum(text)


def album_ref_to_id(ref: AlbumRef) -> str:
    if isinstance(ref, SyntheticAlbum):
        return ref.value
    return ref.bucket_id


def base_uri(kind: MediaKind) -> str:
    return VIDEO_BASE_URI if kind is MediaKind.VIDEO else IMAGE_BASE_URI


def content_uri(kind: MediaKind, asset_id: str) -> str:
    return f"{base_uri(kind)}/{asset_id}"


def parse_content_uri(uri: str) -> str | None:
    for prefix in (IMAGE_BASE_URI, VIDEO_BASE_URI):
        if uri.startswith(prefix + "/"):
            tail = uri[len(prefix) + 1 :]
            return tail or None
    return None


def thumbnail_key(uri: str) -> str:
    return hashlib.sha1(uri.encode("utf-8")).hexdigest()[:20]


def bucket_id_for_folder(folder: str) -> str:
    # Non-negative decimal, like platform media stores, so it never reads as a sentinel.
    digest = hashlib.sha1(folder.lower().encode("utf-8")).hexdigest()
    return str(int(digest[:12], 16))
