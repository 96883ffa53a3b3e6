"""Logging setup shared by the core and the web layer."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logger(
    name: str = "resortbooking",
    log_file: str | None = None,
    level: int | str = logging.INFO,
) -> logging.Logger:
    """Attach one formatted handler to ``name``; later calls only adjust the level."""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler: logging.Handler
        if log_file:
            handler = logging.FileHandler(log_file)
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
