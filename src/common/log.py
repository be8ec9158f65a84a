# ABOUTME: Configures the loguru logger used across the learning core.
# ABOUTME: Library modules only emit records; hosts and the CLI choose the sink and level.

from __future__ import annotations

import sys
from typing import Optional, TextIO

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - {message}"


def configure_logging(level: str = "INFO", sink: Optional[TextIO] = None) -> int:
    """Replace loguru's default handler with one at ``level``; returns the handler id."""

    logger.remove()
    return logger.add(sink or sys.stderr, level=level.upper(), format=LOG_FORMAT)
