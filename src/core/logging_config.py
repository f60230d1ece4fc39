"""Logging setup for the Classio API."""

import logging

from config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too verbose at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "sqlalchemy.engine")


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger once.

    Args:
        level: Log level name, e.g. "INFO" or "DEBUG".
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_secret(value: str, visible: int = 4) -> str:
    """Return a log-safe rendition of a token or code."""
    if not value:
        return "None"
    if len(value) <= visible * 2:
        return value[:2] + "..."
    return f"{value[:visible]}...{value[-visible:]}"
