"""Logging configuration for the API and the worker."""
import logging
import sys
from improver.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level() -> int:
    """LOG_LEVEL wins when it names a real level, otherwise derive from the environment."""
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if settings.environment == "development" else logging.INFO


def configure_logger(name: str = "improver") -> logging.Logger:
    """
    Attach a stdout handler to the named logger once.

    Children such as "improver.capture" propagate into this handler, so the
    capture client shares the server's format when both run in one process.
    """
    configured = logging.getLogger(name)
    configured.setLevel(resolve_level())

    if not configured.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        configured.addHandler(handler)

    # Prevent duplicate logs through the root logger
    configured.propagate = False
    return configured


logger = configure_logger()

__all__ = ["logger", "configure_logger"]
