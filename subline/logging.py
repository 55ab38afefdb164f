"""
subline.logging - Centralized logging configuration.

Provides a simple logging setup with optional verbose mode for debugging.
Log records go to stderr so the JSON result on stdout stays clean.
"""

from __future__ import annotations

import logging
import sys

logger = logging.getLogger("subline")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the subline package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    logger.setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
