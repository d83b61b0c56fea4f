"""Logging setup for the command line and dashboard."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"
MAX_LOG_BYTES = 5_000_000
LOG_BACKUPS = 5

logger = logging.getLogger("orgbook")


def configure_logging(
    level: Union[str, int] = "WARNING",
    log_file: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """Configure the package logger.

    Calling again replaces the handlers installed by a previous call.

    Args:
        level: Level name or number for the package logger.
        log_file: Optional path for a rotating log file (5MB x 5 backups).
        console: Log to stderr. The dashboard turns this off since it owns
            the terminal.

    Returns:
        The ``orgbook`` logger.
    """
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
