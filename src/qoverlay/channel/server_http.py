from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import json
import logging
from typing import Any

from qoverlay.channel.protocol import ChannelProtocol
from qoverlay.service import OverlayService

logger = logging.getLogger(__name__)


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    server_version = "qoverlay-channel"

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/health":
            self._write_json(200, {"ok": True})
            return
        self._write_json(404, {"ok": False, "error": "not found"})

    def do_POST(self) -> None:  # noqa: N802
        if self.path != "/channel":
            self._write_json(404, {"ok": False, "error": "not found"})
            return

        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = -1
        if length < 0:
            self.close_connection = True
            self._write_json(400, {"ok": False, "code": "ARG_ERROR", "error": "invalid content length"})
            return
        raw = self.rfile.read(length)
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._write_json(400, {"ok": False, "code": "ARG_ERROR", "error": "invalid json"})
            return
        if not isinstance(payload, dict):
            self._write_json(400, {"ok": False, "code": "ARG_ERROR", "error": "request must be an object"})
            return

        protocol: ChannelProtocol = self.server.protocol  # type: ignore[attr-defined]
        self._write_json(200, protocol.handle(payload))

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.debug("%s " + fmt, self.address_string(), *args)

    def _write_json(self, status: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def make_http_server(service: OverlayService, host: str = "127.0.0.1", port: int = 8282) -> ThreadingHTTPServer:
    channel = ChannelProtocol(service)

    class _Srv(ThreadingHTTPServer):
        daemon_threads = True
        protocol = channel

    return _Srv((host, port), _Handler)


def run_http_server(service: OverlayService, host: str = "127.0.0.1", port: int = 8282) -> int:
    server = make_http_server(service, host, port)
    logger.info("channel listening on http://%s:%d/channel", host, server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0
