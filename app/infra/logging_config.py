"""Process-wide logging setup; modules ask for a named logger via get_logger."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from app.config import get_settings

APP_LOGGER_NAME = "whatsapp_analytics"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install a stream handler on the app logger. Safe to call more than once."""
    global _configured
    level_name = (level or get_settings().log_level or "INFO").upper()
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(level_name)
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(handler)
        logging.getLogger("app").setLevel(level_name)
        logging.getLogger("app").addHandler(handler)
        _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the app logger, or a child of it when a name is given."""
    if not name:
        return logging.getLogger(APP_LOGGER_NAME)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
