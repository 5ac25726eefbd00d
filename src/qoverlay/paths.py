from __future__ import annotations

from pathlib import Path
import os

APP_NAME = "qoverlay"


def _xdg_root(env_var: str, fallback: Path) -> Path:
    xdg = os.environ.get(env_var)
    if xdg:
        base = Path(xdg)
    else:
        base = fallback
    root = base / APP_NAME
    root.mkdir(parents=True, exist_ok=True)
    return root


def cache_root() -> Path:
    return _xdg_root("XDG_CACHE_HOME", Path.home() / ".cache")


def config_root() -> Path:
    return _xdg_root("XDG_CONFIG_HOME", Path.home() / ".config")


def data_root() -> Path:
    return _xdg_root("XDG_DATA_HOME", Path.home() / ".local" / "share")


def default_catalog_path() -> Path:
    return cache_root() / "catalog.sqlite3"


def default_thumbnail_dir() -> Path:
    return cache_root() / "thumbnails"


def default_state_dir() -> Path:
    return data_root() / "state"
