from __future__ import annotations

import base64
import http.client
import io
import json
from pathlib import Path
import threading
import urllib.request

from PIL import Image

from qoverlay.channel.protocol import ChannelProtocol
from qoverlay.channel.server_http import make_http_server
from qoverlay.channel.server_stdio import run_stdio_server
from qoverlay.config import AppConfig, CatalogConfig, StateConfig, ThumbnailConfig
from qoverlay.service import OverlayService


def _cfg(tmp_path: Path) -> AppConfig:
    return AppConfig(
        catalog=CatalogConfig(db_path=tmp_path / "catalog.sqlite3"),
        state=StateConfig(state_dir=tmp_path / "state"),
        thumbnails=ThumbnailConfig(cache_dir=tmp_path / "thumbs", ffmpeg_path=None),
    )


def _service(tmp_path: Path, count: int = 3) -> OverlayService:
    svc = OverlayService(_cfg(tmp_path))
    for i in range(count):
        svc.catalog.add_asset(name=f"IMG_{i}.jpg", mime_type="image/jpeg", date_added=i, bucket_id="7", bucket_name="DCIM")
    return svc


def test_get_media_items_and_view_flags(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    assert proto.handle({"method": "moveToRecycleBin", "args": {"mediaId": 1}}) == {"ok": True, "result": True}
    assert proto.handle({"method": "hideMediaItem", "args": {"mediaId": 2}})["ok"]

    normal = proto.handle({"method": "getMediaItems", "args": {}})
    assert [row["id"] for row in normal["result"]] == ["3"]

    both = proto.handle({"method": "getMediaItems", "args": {"includeTrashed": True, "includeHidden": True}})
    assert [row["id"] for row in both["result"]] == ["1"]
    assert "deletedAt" in both["result"][0]["metadata"]

    hidden = proto.handle({"method": "getMediaItems", "args": {"includeHidden": True}})
    assert [row["id"] for row in hidden["result"]] == ["2"]


def test_get_media_items_window_and_search(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path, 5))
    page = proto.handle({"method": "getMediaItems", "args": {"limit": 2, "offset": 1, "albumId": "7"}})
    assert [row["id"] for row in page["result"]] == ["4", "3"]

    found = proto.handle({"method": "getMediaItems", "args": {"searchQuery": "img_0"}})
    assert [row["id"] for row in found["result"]] == ["1"]


def test_bad_window_argument(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    out = proto.handle({"method": "getMediaItems", "args": {"limit": "many"}})
    assert out["ok"] is False
    assert out["code"] == "INVALID_ARGUMENT"


def test_get_albums(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    out = proto.handle({"method": "getAlbums"})
    assert out["ok"]
    ids = [a["id"] for a in out["result"]]
    assert ids == ["7", "-1", "-2", "-3"]
    assert set(out["result"][0]) == {"id", "name", "type", "coverUri", "mediaCount", "lastModified", "metadata"}


def test_missing_media_id(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    for method in (
        "deleteMediaItem",
        "moveToRecycleBin",
        "restoreFromRecycleBin",
        "deletePermanently",
        "hideMediaItem",
        "unhideMediaItem",
    ):
        out = proto.handle({"method": method, "args": {}})
        assert out == {"ok": False, "code": "INVALID_ARGUMENT", "error": "mediaId is required"}


def test_missing_uri_is_arg_error(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    assert proto.handle({"method": "getMediaThumbnail", "args": {}})["code"] == "ARG_ERROR"
    assert proto.handle({"method": "getMediaBytes", "args": {}})["code"] == "ARG_ERROR"


def test_unknown_method(tmp_path: Path) -> None:
    out = ChannelProtocol(_service(tmp_path)).handle({"method": "shareMediaItems", "args": {}})
    assert out["ok"] is False
    assert out["code"] == "NOT_IMPLEMENTED"


def test_delete_permanently_and_empty(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    proto.handle({"method": "deleteMediaItem", "args": {"mediaId": "1"}})
    proto.handle({"method": "moveToRecycleBin", "args": {"mediaId": "2"}})

    assert proto.handle({"method": "deletePermanently", "args": {"mediaId": "1"}}) == {"ok": True, "result": True}
    assert proto.handle({"method": "emptyRecycleBin"}) == {"ok": True, "result": True}
    items = proto.handle({"method": "getMediaItems"})["result"]
    assert [row["id"] for row in items] == ["3"]


def test_restore(tmp_path: Path) -> None:
    proto = ChannelProtocol(_service(tmp_path))
    proto.handle({"method": "moveToRecycleBin", "args": {"mediaId": 3}})
    assert proto.handle({"method": "restoreFromRecycleBin", "args": {"mediaId": 3}})["ok"]
    items = proto.handle({"method": "getMediaItems"})["result"]
    assert "3" in [row["id"] for row in items]


def test_thumbnail_and_bytes_are_base64(tmp_path: Path) -> None:
    svc = _service(tmp_path, 0)
    media = tmp_path / "pic.jpg"
    Image.new("RGB", (300, 300), (1, 2, 3)).save(media, format="JPEG")
    asset_id = svc.catalog.add_asset(name="pic.jpg", mime_type="image/jpeg", date_added=1, data_path=str(media))
    proto = ChannelProtocol(svc)
    uri = f"content://qoverlay/images/media/{asset_id}"

    raw = proto.handle({"method": "getMediaBytes", "args": {"uri": uri}})
    assert base64.b64decode(raw["result"]) == media.read_bytes()

    thumb = proto.handle({"method": "getMediaThumbnail", "args": {"uri": uri, "width": 64, "height": 64}})
    with Image.open(io.BytesIO(base64.b64decode(thumb["result"]))) as img:
        assert img.format == "JPEG"

    missing = proto.handle({"method": "getMediaThumbnail", "args": {"uri": "content://qoverlay/images/media/99"}})
    assert missing == {"ok": False, "code": "THUMB_ERROR", "error": "Failed to load thumbnail"}
    assert proto.handle({"method": "getMediaBytes", "args": {"uri": "/nope/missing.jpg"}})["code"] == "BYTES_ERROR"


def test_bytes_outside_catalog_are_refused(tmp_path: Path) -> None:
    svc = _service(tmp_path, 0)
    owned = tmp_path / "library" / "pic.jpg"
    owned.parent.mkdir(parents=True)
    Image.new("RGB", (16, 16)).save(owned, format="JPEG")
    svc.catalog.add_asset(name="pic.jpg", mime_type="image/jpeg", date_added=1, data_path=str(owned))
    secret = tmp_path / "outside" / "secret.txt"
    secret.parent.mkdir()
    secret.write_text("do not serve")
    proto = ChannelProtocol(svc)

    for uri in (str(secret), f"file://{secret}"):
        out = proto.handle({"method": "getMediaBytes", "args": {"uri": uri}})
        assert out["ok"] is False
        assert out["code"] == "BYTES_ERROR"
    assert proto.handle({"method": "getMediaThumbnail", "args": {"uri": str(secret)}})["ok"] is False

    for uri in (str(owned), f"file://{owned}"):
        out = proto.handle({"method": "getMediaBytes", "args": {"uri": uri}})
        assert base64.b64decode(out["result"]) == owned.read_bytes()


def test_stdio_transport(tmp_path: Path) -> None:
    svc = _service(tmp_path)
    stdin = io.StringIO(
        "\n".join(
            [
                json.dumps({"method": "hideMediaItem", "args": {"mediaId": 1}}),
                "not json",
                "",
                json.dumps({"method": "getMediaItems", "args": {"includeHidden": True}}),
                "quit",
                json.dumps({"method": "getAlbums"}),
            ]
        )
    )
    stdout = io.StringIO()

    assert run_stdio_server(svc, stdin=stdin, stdout=stdout) == 0

    lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert len(lines) == 3
    assert lines[0] == {"ok": True, "result": True}
    assert lines[1]["ok"] is False
    assert [row["id"] for row in lines[2]["result"]] == ["1"]


def test_http_transport(tmp_path: Path) -> None:
    server = make_http_server(_service(tmp_path), port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        with urllib.request.urlopen(f"{base}/health") as resp:
            assert json.loads(resp.read()) == {"ok": True}

        body = json.dumps({"method": "getAlbums"}).encode("utf-8")
        req = urllib.request.Request(f"{base}/channel", data=body, headers={"Content-Type": "application/json"})
        with urllib.request.urlopen(req) as resp:
            out = json.loads(resp.read())
        assert out["ok"] is True
        assert out["result"][-1]["id"] == "-3"
    finally:
        server.shutdown()
        server.server_close()


def test_http_rejects_bad_content_length(tmp_path: Path) -> None:
    server = make_http_server(_service(tmp_path), port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    conn = http.client.HTTPConnection("127.0.0.1", server.server_address[1], timeout=5)
    try:
        conn.putrequest("POST", "/channel")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", "abc")
        conn.endheaders()
        resp = conn.getresponse()
        assert resp.status == 400
        assert json.loads(resp.read()) == {"ok": False, "code": "ARG_ERROR", "error": "invalid content length"}
    finally:
        conn.close()
        server.shutdown()
        server.server_close()
