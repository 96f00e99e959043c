"""Path helpers."""

from __future__ import annotations

import os
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create the directory (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Default launchbridge data directory (~/.launchbridge, or $LAUNCHBRIDGE_HOME)."""
    override = os.environ.get("LAUNCHBRIDGE_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".launchbridge"
