"""Logging configuration."""

import logging
import sys

from embed_index.config import get_settings

# Libraries that log every HTTP request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "qdrant_client")


def setup_logging(level: str | None = None) -> None:
    """Configure application logging.

    Args:
        level: Overrides ``LOG_LEVEL`` (e.g. ``DEBUG`` for a verbose CLI run).
    """
    level = (level or get_settings().log_level).upper()

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    if level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        logging.Logger: Configured logger instance.
    """
    return logging.getLogger(name)
