"""Logging setup for occlusion_culling entry points.

Usage:
    from occlusion_culling.utils.logging_config import setup_logging
    setup_logging(verbosity=1)  # once, at the entry point

Library modules only create module-level loggers; they never configure
handlers themselves.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Log rotation defaults
MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def level_for_verbosity(verbosity: int) -> int:
    """Map a -v count to a logging level (0 = WARNING, 1 = INFO, 2+ = DEBUG)."""
    return _VERBOSITY_LEVELS.get(max(0, verbosity), logging.DEBUG)


def setup_logging(
    verbosity: int = 1,
    log_file: str | Path | None = None,
    fmt: str = DEFAULT_FORMAT,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> None:
    """Configure the root logger: stderr plus an optional rotating log file.

    Replaces handlers installed by an earlier call, so repeated calls from
    tests or notebooks do not duplicate output.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    logging.basicConfig(
        level=level_for_verbosity(verbosity), format=fmt, handlers=handlers, force=True
    )
