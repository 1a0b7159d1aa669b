"""Logging setup for the bookmark-tree CLI and MCP server."""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = "{level.icon} {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> None:
    """Log to stderr, and additionally to log_file when given.

    stderr gets INFO and up (DEBUG when verbose). The log file always gets
    DEBUG and is rotated at 1 MB, keeping three old files.
    """
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format=CONSOLE_FORMAT)
    if log_file is not None:
        logger.add(
            log_file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="1 MB",
            retention=3,
            encoding="utf-8",
        )
