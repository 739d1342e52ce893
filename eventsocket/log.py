"""Logging for the library.

Everything goes through loguru. The package is disabled on import so host
applications do not get our output unless they ask for it.
"""

from __future__ import annotations

import sys

from loguru import logger


def enable_logging(level: str | None = None) -> None:
    """Turn on eventsocket log output, optionally adding a stderr sink at ``level``."""
    logger.enable("eventsocket")
    if level is not None:
        logger.add(sys.stderr, level=level, filter="eventsocket")


def disable_logging() -> None:
    logger.disable("eventsocket")
