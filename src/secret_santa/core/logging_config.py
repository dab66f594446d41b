"""Logging setup for the Secret Santa Stage service."""

from __future__ import annotations

import logging
import sys

from secret_santa.core.settings import settings

ROOT_LOGGER_NAME = "secret_santa"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Install a stdout handler on the package logger once and return it."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if logger.handlers:
        return logger  # already configured
    logger.setLevel(level if level is not None else settings.log_level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    # SQL echo is controlled by SQL_DEBUG; keep the engine logger quiet otherwise
    if not settings.sql_debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return logger
