"""Logging setup for command-line use of tiercache."""

import logging
from typing import Optional

from tiercache.config import LoggingSettings
from tiercache.exceptions import ConfigurationError


def configure_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Attach a stream handler to the ``tiercache`` logger once.

    Library code only creates module loggers; handlers are installed
    here by the entry point.

    Raises:
        ConfigurationError: If ``settings.level`` is not a logging level name.
    """
    settings = settings or LoggingSettings()
    level = logging.getLevelName(str(settings.level).upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown logging level: {settings.level!r}")

    logger = logging.getLogger("tiercache")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=settings.format))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
