"""Cached configuration access facade."""

from __future__ import annotations

import threading
from pathlib import Path

from launchbridge.config.loader import get_config_path, load_config
from launchbridge.config.schema import BridgeConfig

_lock = threading.RLock()
_cache: dict[str, BridgeConfig] = {}


def _cache_key(config_path: Path | None = None) -> str:
    return str(Path(config_path or get_config_path()).expanduser().resolve())


def get_config() -> BridgeConfig:
    """Config from the default path, loaded once per process and data directory."""
    key = _cache_key()
    with _lock:
        if key not in _cache:
            _cache[key] = load_config(Path(key))
        return _cache[key]


def clear_config_cache(*, config_path: Path | None = None) -> None:
    """Forget the entry for config_path after it was rewritten, or every entry."""
    with _lock:
        if config_path is None:
            _cache.clear()
            return
        _cache.pop(_cache_key(config_path), None)
