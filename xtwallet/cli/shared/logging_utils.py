"""Loguru sinks for CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from xtwallet.utils.helpers import ensure_dir, get_data_path

_SINK_IDS: dict[str, int] = {}
_console_sink: int | None = None


def log_dir() -> Path:
    return ensure_dir(get_data_path() / "logs")


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_path = log_dir() / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    _SINK_IDS[name] = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    return log_path


def configure_console_logging(level: str = "INFO") -> None:
    """Replace loguru's default stderr sink with one at ``level``."""
    global _console_sink
    if _console_sink is None:
        logger.remove()
    else:
        logger.remove(_console_sink)
    _console_sink = logger.add(sys.stderr, level=level)
