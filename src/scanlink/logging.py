"""Logging configuration for the scanlink server.

The package logger and aiohttp's own loggers share one set of handlers, so
request access lines and WebSocket protocol errors land in the same console
stream and log file as pairing events, filtered by the same level.
"""

import logging
from pathlib import Path

from scanlink.config import Config

PACKAGE_LOGGER = "scanlink"

# aiohttp logs requests on aiohttp.access and handler/protocol failures on
# the others.
AIOHTTP_LOGGERS = (
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
    "aiohttp.websocket",
)

# 2025-01-27 10:30:45 [INFO] scanlink.redemption: message
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger: logging.Logger | None = None
_handlers: list[logging.Handler] = []


def _build_handlers(config: Config) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Route package and aiohttp logging through shared handlers.

    Only the first call configures anything; later calls return the cached
    package logger.

    Args:
        config: Configuration object with log settings.

    Returns:
        The ``scanlink`` package logger.
    """
    global _logger

    if _logger is not None:
        return _logger

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    _handlers[:] = _build_handlers(config)

    for name in (PACKAGE_LOGGER, *AIOHTTP_LOGGERS):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers[:] = _handlers
        logger.propagate = False

    _logger = logging.getLogger(PACKAGE_LOGGER)
    return _logger


def reset_logging() -> None:
    """Detach and close the shared handlers. Used for testing."""
    global _logger
    if _logger is None:
        return

    for name in (PACKAGE_LOGGER, *AIOHTTP_LOGGERS):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    for handler in _handlers:
        handler.close()
    _handlers.clear()
    _logger = None
