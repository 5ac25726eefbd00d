from __future__ import annotations

import json
import sys
from typing import TextIO

from qoverlay.channel.protocol import ChannelProtocol
from qoverlay.service import OverlayService


def run_stdio_server(service: OverlayService, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    protocol = ChannelProtocol(service)
    source = stdin or sys.stdin
    sink = stdout or sys.stdout

    for line in source:
        line = line.strip()
        if not line:
            continue
        if line in {"quit", "exit", "shutdown"}:
            return 0
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            print(json.dumps({"ok": False, "code": "ARG_ERROR", "error": "invalid json"}), file=sink, flush=True)
            continue
        if not isinstance(payload, dict):
            print(json.dumps({"ok": False, "code": "ARG_ERROR", "error": "request must be an object"}), file=sink, flush=True)
            continue
        response = protocol.handle(payload)
        print(json.dumps(response), file=sink, flush=True)

    return 0
