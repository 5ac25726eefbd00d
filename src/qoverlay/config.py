from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from qoverlay.paths import config_root, default_catalog_path, default_state_dir, default_thumbnail_dir


@dataclass(slots=True)
class CatalogConfig:
    db_path: Path = field(default_factory=default_catalog_path)
    roots: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StateConfig:
    state_dir: Path = field(default_factory=default_state_dir)
    namespace: str = "qoverlay_recycle_bin"


@dataclass(slots=True)
class ThumbnailConfig:
    cache_dir: Path = field(default_factory=default_thumbnail_dir)
    sample_factor: int = 4
    video_size: int = 512
    quality: int = 85
    video_thumbnail_at_size: bool = True
    ffmpeg_path: str | None = None


@dataclass(slots=True)
class QueryConfig:
    default_limit: int = 50


@dataclass(slots=True)
class UIConfig:
    show_logo: bool = True


@dataclass(slots=True)
class AppConfig:
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    state: StateConfig = field(default_factory=StateConfig)
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    @property
    def namespace_dir(self) -> Path:
        return self.state.state_dir / self.state.namespace


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _path_or_default(value: Any, default: Path) -> Path:
    if value is None or value == "":
        return default
    return Path(str(value)).expanduser()


def _to_config(data: dict[str, Any]) -> AppConfig:
    catalog_raw = dict(data.get("catalog") or {})
    state_raw = dict(data.get("state") or {})
    thumbs_raw = dict(data.get("thumbnails") or {})

    catalog = CatalogConfig(
        db_path=_path_or_default(catalog_raw.pop("db_path", None), default_catalog_path()),
        roots=[str(r) for r in catalog_raw.pop("roots", None) or []],
    )
    state = StateConfig(
        state_dir=_path_or_default(state_raw.pop("state_dir", None), default_state_dir()),
        **state_raw,
    )
    thumbnails = ThumbnailConfig(
        cache_dir=_path_or_default(thumbs_raw.pop("cache_dir", None), default_thumbnail_dir()),
        **thumbs_raw,
    )
    return AppConfig(
        catalog=catalog,
        state=state,
        thumbnails=thumbnails,
        query=QueryConfig(**data.get("query", {})),
        ui=UIConfig(**data.get("ui", {})),
    )


def default_config_path() -> Path:
    return config_root() / "config.yaml"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    path = config_path or default_config_path()
    base: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            base = loaded
    if overrides:
        base = _merge(base, overrides)
    cfg = _to_config(base)
    cfg.catalog.db_path.parent.mkdir(parents=True, exist_ok=True)
    cfg.thumbnails.cache_dir.mkdir(parents=True, exist_ok=True)
    cfg.namespace_dir.mkdir(parents=True, exist_ok=True)
    return cfg


def write_default_config(path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return target
    target.write_text(
        yaml.safe_dump(
            {
                "catalog": {
                    "db_path": str(default_catalog_path()),
                    "roots": [],
                },
                "state": {
                    "state_dir": str(default_state_dir()),
                    "namespace": "qoverlay_recycle_bin",
                },
                "thumbnails": {
                    "cache_dir": str(default_thumbnail_dir()),
                    "sample_factor": 4,
                    "video_size": 512,
                    "quality": 85,
                    "video_thumbnail_at_size": True,
                    "ffmpeg_path": None,
                },
                "query": {"default_limit": 50},
                "ui": {"show_logo": True},
            },
            sort_keys=False,
        )
    )
    return target
