"""Logging setup for the ``eduvfs`` logger hierarchy."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings

LOGGER_NAME = "eduvfs"
ERROR_LOG_MAX_BYTES = 10 * 1024 * 1024

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_CONSOLE_FORMAT = "[%(asctime)s] %(message)s"
_CONSOLE_DATE_FORMAT = "%H:%M:%S"

_HANDLER_MARK = "_eduvfs_handler"


def configure_logging(settings: Settings) -> logging.Logger:
    """Attach the file and console handlers to the ``eduvfs`` logger.

    Warnings and errors go to ``<log_dir>/error.log`` (rotated at 10 MB).
    Outside production everything at ``settings.log_level`` is also echoed
    to the console.  Calling this again replaces the handlers it installed.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(settings.log_level)

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.log_dir / "error.log",
        maxBytes=ERROR_LOG_MAX_BYTES,
        backupCount=1,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, _FILE_DATE_FORMAT))
    setattr(file_handler, _HANDLER_MARK, True)
    logger.addHandler(file_handler)

    if not settings.is_production:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, _CONSOLE_DATE_FORMAT))
        setattr(console, _HANDLER_MARK, True)
        logger.addHandler(console)

    return logger
