"""Logging configuration for dzsa-sync."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dzsa_sync.config import Config

# Rotation settings for the log file
LOG_MAX_BYTES = 100 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Module-level logger cache
_logger: logging.Logger | None = None


def setup_logging(config: Config) -> logging.Logger:
    """Set up logging based on configuration.

    Args:
        config: Configuration object with log settings.

    Returns:
        Configured logger instance.
    """
    global _logger

    # Idempotent
    if _logger is not None:
        return _logger

    logger = logging.getLogger("dzsa_sync")
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    # Log format: 2025-01-27 10:30:45 [INFO] message
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    if config.log_path:
        log_path = Path(config.log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers:
            handler.close()
        _logger.handlers.clear()
        _logger.propagate = True
        _logger = None
