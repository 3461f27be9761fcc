"""
TEMPFOCUS Logging Configuration

Centralized logging setup for the compensation controller:
- Console output
- Rotating file handler with size limits
- Per-service log level configuration

Usage:
    from tempfocus.logging_config import setup_logging, get_logger

    setup_logging(log_level="INFO", log_file="tempfocus.log")

    logger = get_logger(__name__)
    logger.info("Focuser connected")
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

# Service loggers live outside the tempfocus namespace
SERVICE_LOGGER_PREFIX = "TEMPFOCUS"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _build_handlers(level: int, log_file: Optional[str | Path]) -> list[logging.Handler]:
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        from logging.handlers import RotatingFileHandler

        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
) -> None:
    """Configure logging for the TEMPFOCUS application.

    Sets up the ``tempfocus`` logger and the ``TEMPFOCUS`` service loggers
    with a console handler and an optional rotating file handler.
    Should be called once at application startup.

    Args:
        log_level: Default logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If provided, enables file logging
                  with rotation.
    """
    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)

    for name in ("tempfocus", SERVICE_LOGGER_PREFIX):
        root_logger = logging.getLogger(name)
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        for handler in _build_handlers(level, log_file):
            root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the tempfocus namespace.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance
    """
    if not name.startswith("tempfocus"):
        name = f"tempfocus.{name}"
    return logging.getLogger(name)


def set_service_level(service_name: str, level: str) -> None:
    """Set log level for a specific service.

    Args:
        service_name: Service area (e.g., "Focus", "Guiding", "Compensation")
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Example:
        set_service_level("Guiding", "DEBUG")
    """
    logger = logging.getLogger(f"{SERVICE_LOGGER_PREFIX}.{service_name}")
    logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))
