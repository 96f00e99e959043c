"""Thread-safe JSON key/value store for plugin settings and provider state."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from loguru import logger

SUPPORTED_TYPES: tuple[type, ...] = (bool, int, float, str)


def _type_name(value_type: Any) -> str:
    return str(getattr(value_type, "__name__", value_type))


class SettingsStore:
    """
    Sectioned key/value settings persisted as one JSON document.

    Values are restricted to bool, int, float and str. Anything else is logged
    and dropped so extension code never sees an exception from a settings write.
    """

    def __init__(self, path: Path | None = None):
        self.path = Path(path).expanduser() if path else None
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable settings file {}: {}", self.path, exc)
            return
        if isinstance(parsed, dict):
            self._data = {str(k): dict(v) for k, v in parsed.items() if isinstance(v, dict)}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def value(self, section: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(section, {}).get(key, default)

    def set_value(self, section: str, key: str, value: Any) -> bool:
        """Store value; returns False (and logs) when the type is unsupported."""
        if not isinstance(value, SUPPORTED_TYPES):
            logger.warning(
                "Invalid data type to write to settings: {}. Has to be one of bool|int|float|str.",
                type(value).__name__,
            )
            return False
        with self._lock:
            self._data.setdefault(section, {})[key] = value
            self._flush()
        return True

    def remove(self, section: str, key: str) -> None:
        with self._lock:
            if self._data.get(section, {}).pop(key, None) is not None:
                self._flush()

    def read(self, section: str, key: str, value_type: Any) -> Any:
        """
        Read key coerced to value_type (one of bool, int, float, str).

        Returns None when the key is missing, the stored value cannot be
        converted, or value_type is unsupported.
        """
        raw = self.value(section, key)
        if raw is None:
            return None
        if value_type not in SUPPORTED_TYPES:
            logger.warning(
                "Invalid data type to read from settings: {}. Has to be one of bool|int|float|str.",
                _type_name(value_type),
            )
            return None
        if value_type is bool:
            if isinstance(raw, str):
                return raw.strip().lower() in ("1", "true", "yes", "on")
            return bool(raw)
        try:
            return value_type(raw)
        except (TypeError, ValueError):
            logger.warning("Stored value for {}/{} is not convertible to {}", section, key, _type_name(value_type))
            return None

    def section(self, section: str) -> dict[str, Any]:
        with self._lock:
            return dict(self._data.get(section, {}))
