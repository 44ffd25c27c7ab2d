# src/logging/handlers.py — v1
"""File handlers: rotating application log and per-build log files."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator

_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}

# logger name -> (open holds, level to restore)
_level_holds: dict[str, tuple[int, int]] = {}


def _parse_size(size_str: str) -> int:
    """Parse size string like '10MB' into bytes.

    Supported suffixes: B, KB, MB, GB (case-insensitive).
    """
    match = re.match(r"^(\d+)\s*(B|KB|MB|GB)$", size_str.strip(), re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    return int(match.group(1)) * _SIZE_UNITS[match.group(2).upper()]


def create_rotating_handler(
    log_file: str,
    rotation: str = "10MB",
    retention: int = 5,
) -> RotatingFileHandler:
    """Create a rotating file handler, creating parent directories."""
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    return RotatingFileHandler(
        filename=str(path),
        maxBytes=_parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
    )


class BuildLogFilter(logging.Filter):
    """Pass only records emitted while a given build is current."""

    def __init__(self, build_id: str) -> None:
        super().__init__()
        self._build_id = build_id

    def filter(self, record: logging.LogRecord) -> bool:
        from recipekit.logging.context import get_context

        return get_context().build_id == self._build_id


def create_build_log_handler(log_path: Path, build_id: str) -> logging.FileHandler:
    """Create a handler writing one build's records to its own log file.

    The file is truncated: a build log always describes the latest attempt.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(log_path), mode="w", encoding="utf-8")
    handler.addFilter(BuildLogFilter(build_id))
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    return handler


@contextmanager
def hold_level(logger: logging.Logger, level: int) -> Iterator[None]:
    """Let ``logger`` emit records at ``level`` while the block runs.

    A build log handler only sees what its logger lets through, and an
    unconfigured logger inherits WARNING from the root. Holds nest across
    concurrent builds: the logger's own level is restored when the last
    one is released.
    """
    count, saved = _level_holds.get(logger.name, (0, logger.level))
    if count == 0 and logger.getEffectiveLevel() > level:
        logger.setLevel(level)
    _level_holds[logger.name] = (count + 1, saved)
    try:
        yield
    finally:
        count, saved = _level_holds.pop(logger.name)
        if count > 1:
            _level_holds[logger.name] = (count - 1, saved)
        else:
            logger.setLevel(saved)
