from __future__ import annotations

import os
from pathlib import Path

from PIL import Image

from qoverlay.catalog.base import CatalogQuery
from qoverlay.catalog.scanner import guess_mime, scan_roots
from qoverlay.catalog.sqlite import SqliteCatalog
from qoverlay.ids import bucket_id_for_folder


def _mk_image(path: Path, size: tuple[int, int] = (40, 30)) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (0, 0, 255)).save(path)


def test_scan_adds_buckets_and_dimensions(tmp_path: Path) -> None:
    root = tmp_path / "lib"
    _mk_image(root / "Camera" / "a.png")
    _mk_image(root / "Camera" / "b.jpg", (64, 48))
    _mk_image(root / "Screens" / "c.png")
    (root / "Camera" / "notes.txt").write_text("skip me")
    (root / "Camera" / ".hidden.png").write_bytes(b"")
    catalog = SqliteCatalog(tmp_path / "catalog.sqlite3")

    stats = scan_roots(catalog, [str(root)])

    assert stats.added == 3
    assert stats.scanned == 3
    assets = {a.name: a for a in catalog.query(CatalogQuery())}
    assert set(assets) == {"a.png", "b.jpg", "c.png"}
    assert assets["b.jpg"].width == 64 and assets["b.jpg"].height == 48
    assert assets["a.png"].bucket_name == "Camera"
    assert assets["a.png"].bucket_id == assets["b.jpg"].bucket_id
    assert assets["a.png"].bucket_id == bucket_id_for_folder(str((root / "Camera").resolve()))
    assert assets["c.png"].bucket_id != assets["a.png"].bucket_id


def test_rescan_is_incremental(tmp_path: Path) -> None:
    root = tmp_path / "lib"
    img = root / "Camera" / "a.png"
    _mk_image(img)
    _mk_image(root / "Camera" / "b.png")
    catalog = SqliteCatalog(tmp_path / "catalog.sqlite3")
    scan_roots(catalog, [str(root)])

    again = scan_roots(catalog, [str(root)])
    assert (again.added, again.changed, again.deleted) == (0, 0, 0)

    _mk_image(img, (100, 10))
    st = img.stat()
    os.utime(img, (st.st_atime, st.st_mtime + 10))
    (root / "Camera" / "b.png").unlink()

    third = scan_roots(catalog, [str(root)])
    assert third.changed == 1
    assert third.deleted == 1
    (asset,) = list(catalog.query(CatalogQuery()))
    assert asset.width == 100


def test_missing_root_is_skipped(tmp_path: Path) -> None:
    catalog = SqliteCatalog(tmp_path / "catalog.sqlite3")
    stats = scan_roots(catalog, [str(tmp_path / "absent")])
    assert stats.scanned == 0


def test_guess_mime() -> None:
    assert guess_mime(Path("x.JPG")) == "image/jpeg"
    assert guess_mime(Path("x.mp4")) == "video/mp4"
    assert guess_mime(Path("x.mkv")) == "video/x-matroska"
    assert guess_mime(Path("x.txt")) is None
