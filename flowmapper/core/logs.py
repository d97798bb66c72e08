"""
Logging setup.
One console handler (and an optional file handler) on the package logger.
"""

import logging

from .config import settings


LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | None = None, log_file: str | None = None) -> logging.Logger:
    """
    Configure the ``flowmapper`` logger.

    Args:
        level: Log level name (defaults to config)
        log_file: Optional file to mirror logs into (defaults to config)

    Returns:
        The configured package logger
    """
    level = (level or settings.log_level).upper()
    log_file = log_file if log_file is not None else settings.log_file

    logger = logging.getLogger("flowmapper")
    logger.setLevel(level)

    # Reconfiguring replaces our handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
