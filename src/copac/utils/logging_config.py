"""
Logging helpers.

Modules log through ``logging.getLogger(__name__)``; applications call
``setup_logging`` once to attach a handler to the package logger.
"""

import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "copac"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream=None,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again replaces the handler installed by a previous call
    instead of stacking a second one.

    Args:
        level: Logging level (name such as "DEBUG" or numeric value)
        fmt: Format string for the handler
        stream: Output stream (default: stderr)

    Returns:
        The configured ``copac`` logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_copac_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._copac_handler = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger below the package namespace."""
    if not name:
        return logging.getLogger(PACKAGE_LOGGER)
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
