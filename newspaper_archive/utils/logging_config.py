"""Logging configuration for the newspaper archive."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.logging import RichHandler

from ..config import get_settings

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

QUIET_LOGGERS = ('aiosqlite', 'asyncio', 'sqlalchemy.engine', 'aiohttp.access')

_STATUS_LEVELS = {
    'started': logging.INFO,
    'completed': logging.INFO,
    'skipped': logging.WARNING,
    'failed': logging.ERROR,
}


def _console_handler(use_colors: bool) -> logging.Handler:
    if use_colors and sys.stdout.isatty():
        # Rich renders level and time itself
        handler = RichHandler(rich_tracebacks=True, show_path=False, log_time_format=DATE_FORMAT)
        handler.setFormatter(logging.Formatter('%(name)s | %(message)s'))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(path: str) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding='utf-8')
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; LOG_LEVEL when omitted
        log_file: Optional rotating log file; LOG_FILE when omitted
        use_colors: Use rich console output when stdout is a terminal
    """
    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    root_logger.handlers.clear()

    root_logger.addHandler(_console_handler(use_colors))
    if log_file:
        root_logger.addHandler(_file_handler(log_file))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_operation(
    logger: logging.Logger,
    operation: str,
    status: str,
    **context
):
    """
    Log one step of an operation as ``operation | status | key=value ...``.

    ``started`` and ``completed`` log at INFO, ``skipped`` at WARNING,
    ``failed`` at ERROR and anything else at DEBUG.
    """
    parts = [operation, status]
    parts.extend(f"{key}={value}" for key, value in context.items())
    logger.log(_STATUS_LEVELS.get(status, logging.DEBUG), " | ".join(parts))
