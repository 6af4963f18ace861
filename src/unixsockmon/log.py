"""Logging setup for the command-line entry point.

Library modules only create loggers; handlers are installed here, once, by
the CLI.
"""

from __future__ import annotations

import logging

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_PACKAGE_LOGGER = "unixsockmon"

_installed_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """Attach a stderr handler to the package logger and set its level.

    Calling this again replaces the handler instead of stacking another one.
    """
    global _installed_handler

    logger = logging.getLogger(_PACKAGE_LOGGER)
    if _installed_handler is not None:
        logger.removeHandler(_installed_handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    _installed_handler = handler

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger


__all__ = ["DEFAULT_FORMAT", "configure_logging"]
