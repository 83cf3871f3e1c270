"""Logging setup: module loggers under ``lifebutler``, rendered by rich."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "lifebutler"


def setup_logging(level: str | int = "WARNING", console: Console | None = None) -> logging.Logger:
    """Install a RichHandler on the ``lifebutler`` logger (once) and set *level*.

    Calling again only changes the level. Log output goes to stderr so it
    never mixes with command output.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger
