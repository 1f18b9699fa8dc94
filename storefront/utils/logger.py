"""
Logging for the storefront client.

Every module logs through a child of the "storefront" logger
(get_logger("cart.store") -> "storefront.cart.store"). The level starts
from LOG_LEVEL; the CLI calls configure_logging() to move records to
stderr so stdout carries only command output.
"""
import logging
import os
import sys
from typing import IO, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("storefront")


def _install_handler(stream: IO[str], level: str) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(console_handler)
    logger.setLevel(level)


if not logger.handlers:
    _install_handler(sys.stdout, LOG_LEVEL)

# Not forwarded to the root logger
logger.propagate = False


def configure_logging(level: Optional[str] = None, stream: Optional[IO[str]] = None) -> logging.Logger:
    """Replace the package handler; level defaults to LOG_LEVEL, stream to stdout."""
    _install_handler(stream or sys.stdout, (level or LOG_LEVEL).upper())
    return logger


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional dotted suffix under "storefront"

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"storefront.{name}")
    return logger
