"""Logging configuration for the application."""

import logging
import os
import sys
import threading
from collections.abc import Iterable

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Guards runtime level changes made from message handlers
_level_lock = threading.Lock()


def _parse_level(level: str) -> int:
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    return numeric_level


def _set_logger_levels(names: Iterable[str], level: int) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def configure_logging() -> None:
    """Configure application-wide logging to stdout only.

    Env vars:
      - LOG_LEVEL: DEBUG/INFO/WARNING/ERROR/CRITICAL (default INFO)
    """
    level_name = os.environ.get("LOG_LEVEL", "INFO")
    level = _parse_level(level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Hard reset: ensure exactly one stdout handler with our formatter.
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)

    _set_logger_levels(("urllib3", "requests"), level=max(level, logging.INFO))

    logging.getLogger(__name__).info("Logging configured: level=%s", level_name.upper())


def set_log_level(level_name: str) -> None:
    """Change the root log level at runtime.

    :param level_name: Level name such as ``debug``, ``info`` or ``error``.
    :raises ValueError: If the level name is unknown.
    """
    level = _parse_level(level_name)
    with _level_lock:
        logging.getLogger().setLevel(level)
    logging.getLogger(__name__).info("Log level set to %s", level_name.upper())


def get_log_level() -> str:
    """Get the current root log level name."""
    with _level_lock:
        return logging.getLevelName(logging.getLogger().level)
