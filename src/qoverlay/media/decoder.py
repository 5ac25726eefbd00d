from __future__ import annotations

import io
import logging
import math
from pathlib import Path
import shutil
import subprocess
from typing import Protocol

from PIL import Image

from qoverlay.errors import UnsupportedOperation

logger = logging.getLogger(__name__)

FFMPEG_TIMEOUT_S = 15


class ImageDecoder(Protocol):
    def decode_image(self, data: bytes, sample_factor: int) -> Image.Image: ...

    def load_video_thumbnail(self, source: Path, size: tuple[int, int]) -> Image.Image: ...

    def extract_frame(self, source: Path) -> Image.Image: ...

    def encode_jpeg(self, image: Image.Image, quality: int) -> bytes: ...


class PillowDecoder:
    """Stills through Pillow, video frames through an ``ffmpeg`` binary when one is installed."""

    def __init__(self, ffmpeg_path: str | None = None, thumbnail_at_size: bool = True):
        self.ffmpeg_path = ffmpeg_path or shutil.which("ffmpeg")
        self.thumbnail_at_size = thumbnail_at_size

    def decode_image(self, data: bytes, sample_factor: int) -> Image.Image:
        factor = max(1, int(sample_factor))
        img = Image.open(io.BytesIO(data))
        target = (max(1, math.ceil(img.width / factor)), max(1, math.ceil(img.height / factor)))
        # JPEG can decode at 1/2, 1/4, 1/8 scale directly; reduce() finishes the rest.
        img.draft("RGB", target)
        img.load()
        remaining = img.width // target[0]
        if remaining > 1:
            img = img.reduce(remaining)
        return img.convert("RGB")

    def load_video_thumbnail(self, source: Path, size: tuple[int, int]) -> Image.Image:
        if not self.thumbnail_at_size or not self.ffmpeg_path:
            raise UnsupportedOperation("video thumbnail at size is not available")
        width, height = size
        payload = self._run_ffmpeg(
            [
                "-i",
                str(source),
                "-vf",
                f"thumbnail,scale={width}:{height}:force_original_aspect_ratio=decrease",
                "-frames:v",
                "1",
            ]
        )
        return _open_png(payload)

    def extract_frame(self, source: Path) -> Image.Image:
        if not self.ffmpeg_path:
            raise UnsupportedOperation("no ffmpeg binary for frame extraction")
        payload = self._run_ffmpeg(["-i", str(source), "-frames:v", "1"])
        return _open_png(payload)

    def encode_jpeg(self, image: Image.Image, quality: int) -> bytes:
        buf = io.BytesIO()
        image.convert("RGB").save(buf, format="JPEG", quality=int(quality))
        return buf.getvalue()

    def _run_ffmpeg(self, args: list[str]) -> bytes:
        if not self.ffmpeg_path:
            raise UnsupportedOperation("no ffmpeg binary")
        cmd = [self.ffmpeg_path, "-hide_banner", "-loglevel", "error", *args, "-f", "image2pipe", "-vcodec", "png", "pipe:1"]
        completed = subprocess.run(cmd, capture_output=True, check=False, timeout=FFMPEG_TIMEOUT_S)
        if completed.returncode != 0 or not completed.stdout:
            stderr = completed.stderr.decode("utf-8", "replace").strip()
            raise OSError(f"ffmpeg exited with {completed.returncode}: {stderr}")
        return completed.stdout


def _open_png(payload: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(payload))
    img.load()
    return img.convert("RGB")
