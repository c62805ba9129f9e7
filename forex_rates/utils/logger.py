"""Logging utilities for the forex_rates package."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGER: Optional[logging.Logger] = None

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str = "forex_rates") -> logging.Logger:
    """Return a module-level logger configured with a simple formatter."""
    global _LOGGER
    if _LOGGER is None:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        _LOGGER = logging.getLogger("forex_rates")
    return logging.getLogger(name)


def set_log_level(level: str | int) -> None:
    """Apply ``level`` to the package logger hierarchy."""

    get_logger().setLevel(level.upper() if isinstance(level, str) else level)
