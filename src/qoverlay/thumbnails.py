"""On-disk thumbnail cache keyed by asset locator.

A cached file is never re-validated against its source: once a thumbnail
exists for a locator it is served as-is. Generation failures are reported as
``None`` and never abort the caller.
"""

from __future__ import annotations

import io
import logging
import mimetypes
from pathlib import Path

from PIL import Image

from qoverlay.catalog.base import AssetCatalog
from qoverlay.errors import UnsupportedOperation
from qoverlay.ids import IMAGE_BASE_URI, VIDEO_BASE_URI, thumbnail_key
from qoverlay.media.decoder import ImageDecoder
from qoverlay.models import MediaKind
from qoverlay.util.fsio import atomic_write_bytes

logger = logging.getLogger(__name__)


def coerce_kind(value: MediaKind | str | None) -> MediaKind | None:
    if isinstance(value, MediaKind):
        return value
    if not value:
        return None
    text = value.lower()
    if text == "video" or text.startswith("video/"):
        return MediaKind.VIDEO
    if text == "image" or text.startswith("image/"):
        return MediaKind.IMAGE
    return None


def kind_from_uri(uri: str) -> MediaKind | None:
    if uri.startswith(VIDEO_BASE_URI + "/"):
        return MediaKind.VIDEO
    if uri.startswith(IMAGE_BASE_URI + "/"):
        return MediaKind.IMAGE
    mime, _ = mimetypes.guess_type(uri)
    return coerce_kind(mime)


def calculate_sample_size(width: int, height: int, req_width: int, req_height: int) -> int:
    """Largest power of two that keeps both sides at or above the requested size."""

    sample = 1
    if height > req_height or width > req_width:
        half_h = height // 2
        half_w = width // 2
        while (half_h // sample) >= req_height and (half_w // sample) >= req_width:
            sample *= 2
    return sample


class ThumbnailCache:
    def __init__(
        self,
        cache_dir: Path,
        catalog: AssetCatalog,
        decoder: ImageDecoder,
        sample_factor: int = 4,
        video_size: int = 512,
        quality: int = 85,
    ):
        self.cache_dir = cache_dir
        self.catalog = catalog
        self.decoder = decoder
        self.sample_factor = sample_factor
        self.video_size = video_size
        self.quality = quality
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, asset_uri: str) -> Path:
        return self.cache_dir / f"thumb_{thumbnail_key(asset_uri)}.jpg"

    def get_or_create(self, asset_uri: str, mime_kind: MediaKind | str | None) -> Path | None:
        target = self.path_for(asset_uri)
        if target.exists():
            return target

        kind = coerce_kind(mime_kind)
        if kind is None:
            return None
        try:
            image = self._decode(asset_uri, kind)
            if image is None:
                return None
            atomic_write_bytes(target, self.decoder.encode_jpeg(image, self.quality))
        except Exception as exc:
            logger.debug("thumbnail unavailable for %s: %s", asset_uri, exc)
            return None
        return target

    def render(self, asset_uri: str, width: int, height: int, mime_kind: MediaKind | str | None = None) -> bytes | None:
        """Encode a preview of the requested size without touching the cache."""

        kind = coerce_kind(mime_kind) or kind_from_uri(asset_uri)
        if kind is None:
            return None
        try:
            if kind is MediaKind.VIDEO:
                image = self._video_frame(asset_uri, (width, height))
                if image is None:
                    return None
                image.thumbnail((width, height))
            else:
                data = self.catalog.open_bytes(asset_uri)
                image = self._image_at_size(data, width, height)
            return self.decoder.encode_jpeg(image, self.quality)
        except Exception as exc:
            logger.debug("preview unavailable for %s: %s", asset_uri, exc)
            return None

    def _decode(self, asset_uri: str, kind: MediaKind) -> Image.Image | None:
        if kind is MediaKind.IMAGE:
            data = self.catalog.open_bytes(asset_uri)
            return self.decoder.decode_image(data, self.sample_factor)
        image = self._video_frame(asset_uri, (self.video_size, self.video_size))
        if image is not None:
            image.thumbnail((self.video_size, self.video_size))
        return image

    def _video_frame(self, asset_uri: str, size: tuple[int, int]) -> Image.Image | None:
        source = self.catalog.resolve_path(asset_uri)
        if source is None:
            return None
        try:
            return self.decoder.load_video_thumbnail(source, size)
        except UnsupportedOperation:
            logger.debug("falling back to frame extraction for %s", asset_uri)
        return self.decoder.extract_frame(source)

    def _image_at_size(self, data: bytes, width: int, height: int) -> Image.Image:
        with Image.open(io.BytesIO(data)) as header:
            src_w, src_h = header.size
        sample = calculate_sample_size(src_w, src_h, width, height)
        return self.decoder.decode_image(data, sample)
