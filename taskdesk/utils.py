"""
Shared helpers.
"""
import logging

from taskdesk.core import config


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    Usage:
        log = get_logger(__name__)
    """
    _configure_root()
    return logging.getLogger(name)
