from __future__ import annotations

from contextlib import contextmanager
import json
import logging
from pathlib import Path
import sqlite3
from typing import Any, Iterator

from qoverlay.catalog.base import CatalogQuery
from qoverlay.errors import CatalogAccessError
from qoverlay.ids import parse_content_uri
from qoverlay.models import Asset, MediaKind

logger = logging.getLogger(__name__)

SETUP_SQL = """
CREATE TABLE IF NOT EXISTS assets (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  display_name TEXT NOT NULL,
  mime_type TEXT NOT NULL,
  media_type TEXT NOT NULL CHECK (media_type IN ('image', 'video')),
  size INTEGER NOT NULL DEFAULT 0,
  date_added INTEGER NOT NULL,
  date_modified INTEGER NOT NULL,
  width INTEGER,
  height INTEGER,
  duration INTEGER,
  bucket_id TEXT,
  bucket_display_name TEXT,
  data TEXT UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_assets_date_added ON assets(date_added DESC, id DESC);
CREATE INDEX IF NOT EXISTS idx_assets_bucket ON assets(bucket_id);
"""

ASSET_COLUMNS = """
id, display_name, mime_type, size, date_added, date_modified,
width, height, duration, bucket_id, bucket_display_name, data
"""


def _row_to_asset(row: sqlite3.Row) -> Asset:
    return Asset(
        id=str(row["id"]),
        name=str(row["display_name"]),
        mime_type=str(row["mime_type"]),
        size=int(row["size"] or 0),
        date_added=int(row["date_added"] or 0),
        date_modified=int(row["date_modified"] or 0),
        width=row["width"],
        height=row["height"],
        duration=row["duration"],
        bucket_id=row["bucket_id"],
        bucket_name=row["bucket_display_name"],
        data_path=row["data"],
    )


def _numeric_ids(ids: frozenset[str]) -> list[int]:
    # Catalog rows are keyed by integers; opaque ids can never match one.
    out: list[int] = []
    for value in ids:
        try:
            out.append(int(value))
        except ValueError:
            continue
    return sorted(out)


def build_query_sql(request: CatalogQuery) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    args: list[Any] = []

    if request.partition is not None:
        clauses.append("media_type = ?")
        args.append(request.partition.value)
    else:
        clauses.append("media_type IN ('image', 'video')")

    if request.include_ids is not None:
        clauses.append("id IN (SELECT value FROM json_each(?))")
        args.append(json.dumps(_numeric_ids(request.include_ids)))
    if request.exclude_ids:
        clauses.append("id NOT IN (SELECT value FROM json_each(?))")
        args.append(json.dumps(_numeric_ids(request.exclude_ids)))

    if request.bucket_id is not None:
        clauses.append("bucket_id = ?")
        args.append(request.bucket_id)
    if request.mime_prefix:
        clauses.append("LOWER(mime_type) LIKE ?")
        args.append(f"{request.mime_prefix.lower()}%")
    if request.name_contains:
        clauses.append("INSTR(LOWER(display_name), ?) > 0")
        args.append(request.name_contains.lower())

    sql = f"SELECT {ASSET_COLUMNS} FROM assets WHERE {' AND '.join(clauses)} ORDER BY date_added DESC, id DESC"
    return sql, args


class Database:
    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.executescript(SETUP_SQL)


class SqliteCatalog:
    """Reference asset catalog backed by a local SQLite table."""

    def __init__(self, path: Path):
        self.db = Database(path)
        try:
            self.db.initialize()
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"cannot open catalog {path}: {exc}") from exc

    def query(self, request: CatalogQuery) -> Iterator[Asset]:
        sql, args = build_query_sql(request)
        try:
            with self.db.connect() as conn:
                for row in conn.execute(sql, args):
                    yield _row_to_asset(row)
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog query failed: {exc}") from exc

    def get(self, asset_id: str) -> Asset | None:
        try:
            key = int(asset_id)
        except ValueError:
            return None
        try:
            with self.db.connect() as conn:
                row = conn.execute(f"SELECT {ASSET_COLUMNS} FROM assets WHERE id = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog lookup failed: {exc}") from exc
        return _row_to_asset(row) if row else None

    def delete(self, asset_id: str) -> int:
        try:
            key = int(asset_id)
        except ValueError:
            return 0
        try:
            with self.db.connect() as conn:
                row = conn.execute("SELECT data FROM assets WHERE id = ?", (key,)).fetchone()
                if row is None:
                    return 0
                data = row["data"]
                cur = conn.execute("DELETE FROM assets WHERE id = ?", (key,))
                deleted = int(cur.rowcount)
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog delete failed: {exc}") from exc

        # The file goes only after the row removal is committed.
        if deleted and data:
            try:
                Path(str(data)).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("asset %s removed from catalog but %s was kept: %s", key, data, exc)
        logger.debug("deleted asset %s (%s)", key, data)
        return deleted

    def _is_catalog_file(self, path: Path) -> bool:
        candidates = {str(path), str(path.resolve())}
        try:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM assets WHERE data IN (SELECT value FROM json_each(?)) LIMIT 1",
                    (json.dumps(sorted(candidates)),),
                ).fetchone()
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog lookup failed: {exc}") from exc
        return row is not None

    def resolve_path(self, uri: str) -> Path | None:
        """Map a content URI, ``file://`` URI or absolute path to a file owned by the catalog."""

        asset_id = parse_content_uri(uri)
        if asset_id is not None:
            asset = self.get(asset_id)
            if asset is None or not asset.data_path:
                return None
            return Path(asset.data_path)
        if uri.startswith("file://"):
            candidate = Path(uri[len("file://") :])
        else:
            candidate = Path(uri)
        if not candidate.is_absolute() or not self._is_catalog_file(candidate):
            return None
        return candidate

    def open_bytes(self, uri: str) -> bytes:
        path = self.resolve_path(uri)
        if path is None:
            raise CatalogAccessError(f"unknown media uri: {uri}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise CatalogAccessError(f"cannot read {uri}: {exc}") from exc

    def add_asset(
        self,
        name: str,
        mime_type: str,
        date_added: int,
        date_modified: int | None = None,
        size: int = 0,
        width: int | None = None,
        height: int | None = None,
        duration: int | None = None,
        bucket_id: str | None = None,
        bucket_name: str | None = None,
        data_path: str | None = None,
    ) -> str:
        media_type = MediaKind.from_mime(mime_type).value
        try:
            with self.db.connect() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO assets(
                      display_name, mime_type, media_type, size, date_added, date_modified,
                      width, height, duration, bucket_id, bucket_display_name, data
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        name,
                        mime_type,
                        media_type,
                        size,
                        date_added,
                        date_added if date_modified is None else date_modified,
                        width,
                        height,
                        duration,
                        bucket_id,
                        bucket_name,
                        data_path,
                    ),
                )
                return str(cur.lastrowid)
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog insert failed: {exc}") from exc

    def counts(self) -> dict[str, int]:
        try:
            with self.db.connect() as conn:
                rows = conn.execute("SELECT media_type, COUNT(*) AS n FROM assets GROUP BY media_type").fetchall()
        except sqlite3.Error as exc:
            raise CatalogAccessError(f"catalog count failed: {exc}") from exc
        out = {"image": 0, "video": 0}
        for row in rows:
            out[str(row["media_type"])] = int(row["n"])
        return out
