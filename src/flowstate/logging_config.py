"""Logging configuration for flowstate."""

import sys
from pathlib import Path

from loguru import logger

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure loguru: terse stderr output, plus a full debug log when ``log_file`` is set.

    stdout is never used, it carries command output and the MCP stdio transport.
    """
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")
    if log_file is not None:
        logger.add(log_file, level="DEBUG", format=FILE_FORMAT, rotation="5 MB", retention=3)
