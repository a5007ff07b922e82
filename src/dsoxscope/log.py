"""Console logging setup for the dsoxscope CLI."""

from __future__ import annotations

import logging
import sys

import colorlog

LOG_FORMATTER = colorlog.ColoredFormatter(
    "%(log_color)s%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
    reset=True,
    log_colors={
        "DEBUG": "green",
        "INFO": "white",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "red,bg_white",
    },
    style="%",
)


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a colored console handler to the dsoxscope logger.

    Args:
        verbose: Log instrument traffic (DEBUG) instead of INFO and above

    Returns:
        The package logger
    """
    handler = colorlog.StreamHandler()
    handler.setFormatter(LOG_FORMATTER)
    handler.stream = sys.stderr

    logger = logging.getLogger("dsoxscope")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
