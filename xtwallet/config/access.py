"""Process-wide cached access to the wallet configuration."""

from __future__ import annotations

import threading
from pathlib import Path

from xtwallet.config.loader import get_config_path, load_config
from xtwallet.config.schema import Config

_lock = threading.RLock()
_cache: dict[Path, Config] = {}


def _resolve(config_path: Path | None) -> Path:
    return Path(config_path or get_config_path()).expanduser().resolve()


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> Config:
    """Load the config at ``config_path`` once and reuse it until cleared or reloaded."""
    path = _resolve(config_path)
    with _lock:
        cached = _cache.get(path)
        if cached is None or force_reload:
            cached = _cache[path] = load_config(path)
        return cached


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Pin an in-memory config for ``config_path`` without touching disk."""
    with _lock:
        _cache[_resolve(config_path)] = config


def clear_config_cache(*, config_path: Path | None = None) -> None:
    """Drop one cached entry, or all of them when no path is given."""
    with _lock:
        if config_path is None:
            _cache.clear()
        else:
            _cache.pop(_resolve(config_path), None)
