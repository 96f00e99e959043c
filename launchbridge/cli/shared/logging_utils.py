"""Loguru helpers for consistent logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from launchbridge.utils.helpers import ensure_dir, get_data_path

_SINK_IDS: dict[str, int] = {}

CONSOLE_FORMAT = "<level>{level: <8}</level> <cyan>{extra[channel]}</cyan> {message}"


def configure_console_logging(level: str = "WARNING") -> None:
    """Replace the default stderr sink with one showing the plugin channel."""
    logger.remove()
    logger.configure(extra={"channel": "launchbridge"})
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT)


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_dir = get_data_path() / "logs"
    log_path = log_dir / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    ensure_dir(log_dir)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path
