from __future__ import annotations

import base64
from dataclasses import dataclass
import logging
from typing import Any, Callable

from qoverlay.errors import InvalidArgument
from qoverlay.models import ViewMode
from qoverlay.result import Result
from qoverlay.service import OverlayService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChannelResponse:
    ok: bool
    result: Any | None = None
    code: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            out["result"] = self.result
        else:
            out["code"] = self.code or "UNKNOWN_ERROR"
            out["error"] = self.error or "unknown error"
        return out


def _int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"{key} must be an integer, got {value!r}") from exc


def _view_mode_from_args(args: dict[str, Any]) -> ViewMode:
    if args.get("includeTrashed"):
        return ViewMode.TRASHED_ONLY
    if args.get("includeHidden"):
        return ViewMode.HIDDEN_ONLY
    return ViewMode.NORMAL


def _b64(data: bytes | None) -> str | None:
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


@dataclass(slots=True, frozen=True)
class _Method:
    handler: Callable[[dict[str, Any]], Result[Any]]
    error_code: str
    # Code used when the call is rejected for a missing or malformed argument.
    arg_code: str = "INVALID_ARGUMENT"
    encode: Callable[[Any], Any] | None = None


class ChannelProtocol:
    def __init__(self, service: OverlayService):
        self.service = service
        self.methods: dict[str, _Method] = {
            "getMediaItems": _Method(self._get_media_items, "MEDIA_ERROR"),
            "getAlbums": _Method(lambda args: self.service.list_albums(), "ALBUM_ERROR"),
            "getMediaThumbnail": _Method(self._get_thumbnail, "THUMB_ERROR", arg_code="ARG_ERROR", encode=_b64),
            "getMediaBytes": _Method(
                lambda args: self.service.media_bytes(args.get("uri")),
                "BYTES_ERROR",
                arg_code="ARG_ERROR",
                encode=_b64,
            ),
            "deleteMediaItem": _Method(lambda args: self.service.trash(args.get("mediaId")), "DELETE_ERROR"),
            "moveToRecycleBin": _Method(lambda args: self.service.trash(args.get("mediaId")), "MOVE_ERROR"),
            "restoreFromRecycleBin": _Method(
                lambda args: self.service.restore(args.get("mediaId")), "RESTORE_ERROR"
            ),
            "deletePermanently": _Method(lambda args: self.service.purge(args.get("mediaId")), "DELETE_ERROR"),
            "emptyRecycleBin": _Method(lambda args: self.service.empty_trash(), "EMPTY_ERROR"),
            "hideMediaItem": _Method(lambda args: self.service.hide(args.get("mediaId")), "HIDE_ERROR"),
            "unhideMediaItem": _Method(lambda args: self.service.unhide(args.get("mediaId")), "UNHIDE_ERROR"),
        }

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        name = payload.get("method") or payload.get("tool")
        args = payload.get("args") or payload.get("params") or {}
        if not isinstance(args, dict):
            return ChannelResponse(ok=False, code="ARG_ERROR", error="args must be an object").as_dict()

        method = self.methods.get(str(name)) if name else None
        if method is None:
            return ChannelResponse(ok=False, code="NOT_IMPLEMENTED", error=f"unknown method: {name}").as_dict()

        try:
            result = method.handler(args)
        except InvalidArgument as exc:
            return ChannelResponse(ok=False, code=method.arg_code, error=str(exc)).as_dict()

        if not result.ok:
            code = method.arg_code if isinstance(result.error, InvalidArgument) else method.error_code
            logger.debug("%s -> %s: %s", name, code, result.message)
            return ChannelResponse(ok=False, code=code, error=result.message).as_dict()

        value = method.encode(result.value) if method.encode else result.value
        return ChannelResponse(ok=True, result=value).as_dict()

    def _get_media_items(self, args: dict[str, Any]) -> Result[list[dict[str, Any]]]:
        return self.service.list_assets(
            album_id=args.get("albumId"),
            media_kind=args.get("mediaType"),
            limit=_int_arg(args, "limit", self.service.config.query.default_limit),
            offset=_int_arg(args, "offset", 0),
            view_mode=_view_mode_from_args(args),
            search_query=args.get("searchQuery"),
        )

    def _get_thumbnail(self, args: dict[str, Any]) -> Result[bytes]:
        return self.service.thumbnail(
            args.get("uri"),
            width=_int_arg(args, "width", 200),
            height=_int_arg(args, "height", 200),
        )
