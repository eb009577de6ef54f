from __future__ import annotations

import logging

from .config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
PACKAGE_LOGGER = "receipt_snap"


def setup_logging(settings: Settings) -> int:
    """Apply ``settings.log_level`` to the package loggers and return the numeric level.

    ``basicConfig`` is a no-op once the root logger has handlers (a host
    server or test runner), so the package logger level is set explicitly.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.log_level!r}")
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    return level
