from __future__ import annotations

import io
from pathlib import Path

from PIL import Image
import pytest

from qoverlay.catalog.sqlite import SqliteCatalog
from qoverlay.errors import UnsupportedOperation
from qoverlay.ids import content_uri
from qoverlay.media.decoder import PillowDecoder
from qoverlay.models import MediaKind
from qoverlay.thumbnails import ThumbnailCache, calculate_sample_size, kind_from_uri


def _mk_image(path: Path, size: tuple[int, int] = (800, 600)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (200, 30, 30)).save(path, format="JPEG")
    return path


class CountingDecoder(PillowDecoder):
    def __init__(self) -> None:
        super().__init__(ffmpeg_path=None)
        self.decodes = 0

    def decode_image(self, data: bytes, sample_factor: int) -> Image.Image:
        self.decodes += 1
        return super().decode_image(data, sample_factor)


class FallbackVideoDecoder(PillowDecoder):
    def __init__(self) -> None:
        super().__init__(ffmpeg_path=None)
        self.at_size_calls = 0
        self.frame_calls = 0

    def load_video_thumbnail(self, source: Path, size: tuple[int, int]) -> Image.Image:
        self.at_size_calls += 1
        raise UnsupportedOperation("not on this host")

    def extract_frame(self, source: Path) -> Image.Image:
        self.frame_calls += 1
        return Image.new("RGB", (1920, 1080), (0, 0, 255))


class BrokenDecoder(PillowDecoder):
    def decode_image(self, data: bytes, sample_factor: int) -> Image.Image:
        raise OSError("truncated file")


def _setup(tmp_path: Path, decoder: PillowDecoder) -> tuple[SqliteCatalog, ThumbnailCache]:
    catalog = SqliteCatalog(tmp_path / "catalog.sqlite3")
    cache = ThumbnailCache(tmp_path / "thumbs", catalog, decoder)
    return catalog, cache


def test_get_or_create_is_idempotent(tmp_path: Path) -> None:
    decoder = CountingDecoder()
    catalog, cache = _setup(tmp_path, decoder)
    asset_id = catalog.add_asset(
        name="a.jpg", mime_type="image/jpeg", date_added=1, data_path=str(_mk_image(tmp_path / "a.jpg"))
    )
    uri = content_uri(MediaKind.IMAGE, asset_id)

    first = cache.get_or_create(uri, MediaKind.IMAGE)
    second = cache.get_or_create(uri, "image/jpeg")

    assert first is not None
    assert first == second
    assert first.name.startswith("thumb_") and first.suffix == ".jpg"
    assert decoder.decodes == 1
    with Image.open(first) as thumb:
        assert thumb.format == "JPEG"
        # Default sample factor of 4.
        assert thumb.size == (200, 150)


def test_no_temporary_files_remain(tmp_path: Path) -> None:
    catalog, cache = _setup(tmp_path, CountingDecoder())
    for i in range(3):
        asset_id = catalog.add_asset(
            name=f"{i}.jpg", mime_type="image/jpeg", date_added=i,
            data_path=str(_mk_image(tmp_path / f"{i}.jpg")),
        )
        cache.get_or_create(content_uri(MediaKind.IMAGE, asset_id), MediaKind.IMAGE)

    names = [p.name for p in (tmp_path / "thumbs").iterdir()]
    assert len(names) == 3
    assert all(n.startswith("thumb_") and n.endswith(".jpg") for n in names)


def test_video_falls_back_to_frame_extraction(tmp_path: Path) -> None:
    decoder = FallbackVideoDecoder()
    catalog, cache = _setup(tmp_path, decoder)
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"\x00" * 64)
    asset_id = catalog.add_asset(name="clip.mp4", mime_type="video/mp4", date_added=1, data_path=str(clip))

    path = cache.get_or_create(content_uri(MediaKind.VIDEO, asset_id), MediaKind.VIDEO)

    assert path is not None and path.exists()
    with Image.open(path) as thumb:
        assert max(thumb.size) == 512
    assert decoder.at_size_calls == 1
    assert decoder.frame_calls == 1


def test_decode_failure_is_absent_not_error(tmp_path: Path) -> None:
    catalog, cache = _setup(tmp_path, BrokenDecoder())
    asset_id = catalog.add_asset(
        name="a.jpg", mime_type="image/jpeg", date_added=1, data_path=str(_mk_image(tmp_path / "a.jpg"))
    )
    uri = content_uri(MediaKind.IMAGE, asset_id)

    assert cache.get_or_create(uri, MediaKind.IMAGE) is None
    assert not cache.path_for(uri).exists()


def test_unknown_asset_and_kind_are_absent(tmp_path: Path) -> None:
    _, cache = _setup(tmp_path, CountingDecoder())
    assert cache.get_or_create(content_uri(MediaKind.IMAGE, "999"), MediaKind.IMAGE) is None
    assert cache.get_or_create("content://qoverlay/images/media/1", "application/pdf") is None


def test_cached_file_is_served_without_revalidation(tmp_path: Path) -> None:
    decoder = CountingDecoder()
    catalog, cache = _setup(tmp_path, decoder)
    source = _mk_image(tmp_path / "a.jpg")
    asset_id = catalog.add_asset(name="a.jpg", mime_type="image/jpeg", date_added=1, data_path=str(source))
    uri = content_uri(MediaKind.IMAGE, asset_id)

    first = cache.get_or_create(uri, MediaKind.IMAGE)
    source.unlink()

    assert cache.get_or_create(uri, MediaKind.IMAGE) == first
    assert decoder.decodes == 1


def test_render_downsamples_by_power_of_two(tmp_path: Path) -> None:
    catalog, cache = _setup(tmp_path, CountingDecoder())
    asset_id = catalog.add_asset(
        name="big.jpg", mime_type="image/jpeg", date_added=1,
        data_path=str(_mk_image(tmp_path / "big.jpg", (1600, 1200))),
    )

    data = cache.render(content_uri(MediaKind.IMAGE, asset_id), 200, 200)

    assert data is not None
    with Image.open(io.BytesIO(data)) as img:
        # 1200 / 4 = 300 keeps both sides at or above 200.
        assert img.size == (400, 300)
    assert list((tmp_path / "thumbs").iterdir()) == []


def test_calculate_sample_size() -> None:
    assert calculate_sample_size(100, 100, 200, 200) == 1
    assert calculate_sample_size(1600, 1200, 200, 200) == 4
    assert calculate_sample_size(4000, 3000, 200, 200) == 8
    assert calculate_sample_size(400, 400, 200, 200) == 2


def test_kind_from_uri() -> None:
    assert kind_from_uri("content://qoverlay/video/media/5") is MediaKind.VIDEO
    assert kind_from_uri("content://qoverlay/images/media/5") is MediaKind.IMAGE
    assert kind_from_uri("/photos/x.png") is MediaKind.IMAGE
    assert kind_from_uri("/photos/notes.txt") is None


def test_missing_ffmpeg_is_unsupported_operation(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("qoverlay.media.decoder.shutil.which", lambda name: None)
    decoder = PillowDecoder(ffmpeg_path=None)
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"\x00")

    with pytest.raises(UnsupportedOperation):
        decoder.extract_frame(clip)
    with pytest.raises(UnsupportedOperation):
        decoder._run_ffmpeg(["-i", str(clip)])
