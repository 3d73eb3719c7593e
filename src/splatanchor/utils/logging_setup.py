from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers held at WARNING unless the console level is DEBUG
NOISY_LOGGERS = ("pyproj",)


def parse_level(level: str) -> int:
    """Maps a level name (any case) to its number; unknown names raise ValueError."""
    numeric_level = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return numeric_level


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the CLI.

    Console output goes to stderr; stdout carries command results. The
    optional rotating log file records at least INFO whatever the console
    level.
    """
    numeric_level = parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers = [console]
    root_level = numeric_level

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=1024 * 1024, backupCount=3, encoding="utf-8")
        file_level = min(numeric_level, logging.INFO)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)
        root_level = file_level

    logging.basicConfig(level=root_level, handlers=handlers, force=True)

    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
