"""
Logging Utilities

This module sets up logging for the project. Every module obtains its logger
through setup_logger(__name__); the CLI re-levels all of them at once with
configure_logging().
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER_PREFIX = "surface_stitching"

_CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
_FILE_FORMAT = '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)
    # Handlers are attached per logger; stop records reaching the root twice
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        _add_file_handler(logger, log_file, level)

    return logger


def _add_file_handler(logger: logging.Logger, log_file: str, level: int) -> None:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(file_handler)


def configure_logging(level: int | str = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Apply a level (and optional log file) to every logger of the package.

    Loggers created with setup_logger() keep their handlers; only levels are
    updated, and a file handler is attached once per logger when requested.

    Args:
        level: Logging level as int or name ("DEBUG", "INFO", ...)
        log_file: Optional log file shared by all package loggers
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    manager = logging.Logger.manager
    names = [n for n in manager.loggerDict if n.startswith(PACKAGE_LOGGER_PREFIX)]
    for name in names:
        logger = logging.getLogger(name)
        if not logger.handlers:
            continue
        logger.setLevel(level)
        has_file = False
        for handler in logger.handlers:
            handler.setLevel(level)
            if isinstance(handler, logging.FileHandler):
                has_file = True
        if log_file and not has_file:
            _add_file_handler(logger, log_file, level)
