from __future__ import annotations

from dataclasses import dataclass
import logging
import mimetypes
from pathlib import Path
import sqlite3
from typing import Iterator

from PIL import Image, UnidentifiedImageError

from qoverlay.catalog.sqlite import SqliteCatalog
from qoverlay.errors import CatalogAccessError
from qoverlay.ids import bucket_id_for_folder
from qoverlay.util.time import now_s

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".heic"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".mkv", ".webm", ".avi", ".3gp"}

_MIME_FALLBACK = {
    ".heic": "image/heic",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".3gp": "video/3gpp",
}


@dataclass(slots=True)
class FileStat:
    path: Path
    mime_type: str
    size: int
    mtime: int


@dataclass(slots=True)
class UpdateStats:
    added: int = 0
    changed: int = 0
    deleted: int = 0
    scanned: int = 0


def guess_mime(path: Path) -> str | None:
    ext = path.suffix.lower()
    if ext not in IMAGE_EXTENSIONS and ext not in VIDEO_EXTENSIONS:
        return None
    mime, _ = mimetypes.guess_type(path.name)
    if mime and (mime.startswith("image/") or mime.startswith("video/")):
        return mime
    if ext in _MIME_FALLBACK:
        return _MIME_FALLBACK[ext]
    return "video/mp4" if ext in VIDEO_EXTENSIONS else "image/jpeg"


def iter_media_files(root: Path) -> Iterator[FileStat]:
    for p in root.rglob("*"):
        if not p.is_file() or p.name.startswith("."):
            continue
        mime = guess_mime(p)
        if mime is None:
            continue
        st = p.stat()
        yield FileStat(path=p.resolve(), mime_type=mime, size=st.st_size, mtime=int(st.st_mtime))


def read_dimensions(path: Path) -> tuple[int | None, int | None]:
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError):
        return None, None
    return width, height


def _upsert(conn: sqlite3.Connection, stat: FileStat, known: dict[str, sqlite3.Row], stats: UpdateStats) -> None:
    key = str(stat.path)
    folder = stat.path.parent
    row = known.get(key)
    if row is not None and int(row["size"]) == stat.size and int(row["date_modified"]) == stat.mtime:
        return

    width, height = (None, None)
    if stat.mime_type.startswith("image/"):
        width, height = read_dimensions(stat.path)

    if row is None:
        conn.execute(
            """
            INSERT INTO assets(
              display_name, mime_type, media_type, size, date_added, date_modified,
              width, height, duration, bucket_id, bucket_display_name, data
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?)
            """,
            (
                stat.path.name,
                stat.mime_type,
                "video" if stat.mime_type.startswith("video/") else "image",
                stat.size,
                now_s(),
                stat.mtime,
                width,
                height,
                bucket_id_for_folder(str(folder)),
                folder.name,
                key,
            ),
        )
        stats.added += 1
        return

    conn.execute(
        "UPDATE assets SET size = ?, date_modified = ?, width = ?, height = ?, mime_type = ? WHERE id = ?",
        (stat.size, stat.mtime, width, height, stat.mime_type, int(row["id"])),
    )
    stats.changed += 1


def scan_roots(catalog: SqliteCatalog, roots: list[str]) -> UpdateStats:
    """Bring the catalog in line with the media files found under *roots*."""

    stats = UpdateStats()
    try:
        with catalog.db.connect() as conn:
            known = {
                str(r["data"]): r
                for r in conn.execute("SELECT id, size, date_modified, data FROM assets WHERE data IS NOT NULL")
            }
            seen: set[str] = set()
            for root in roots:
                root_path = Path(root).expanduser()
                if not root_path.is_dir():
                    logger.warning("skipping missing library root %s", root_path)
                    continue
                for stat in iter_media_files(root_path):
                    stats.scanned += 1
                    seen.add(str(stat.path))
                    _upsert(conn, stat, known, stats)

            for key, row in known.items():
                if key in seen or Path(key).exists():
                    continue
                conn.execute("DELETE FROM assets WHERE id = ?", (int(row["id"]),))
                stats.deleted += 1
    except sqlite3.Error as exc:
        raise CatalogAccessError(f"catalog update failed: {exc}") from exc

    logger.info(
        "scan finished: scanned=%d added=%d changed=%d deleted=%d",
        stats.scanned,
        stats.added,
        stats.changed,
        stats.deleted,
    )
    return stats
