"""Logging setup for the dotpack command line.

Library modules only do ``logger = logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once. Level precedence: ``-v`` flags > ``DOTPACK_LOG_LEVEL`` >
WARNING.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

from rich.console import Console
from rich.logging import RichHandler

from .paths import ENV_LOG_LEVEL, TOOL_NAME

_VERBOSITY_LEVELS = {0: None, 1: logging.INFO}


def resolve_level(verbosity: int = 0, environ: Mapping[str, str] | None = None) -> int:
    """Map ``-v`` count and environment to a numeric log level."""

    if verbosity >= 2:
        return logging.DEBUG
    from_flag = _VERBOSITY_LEVELS.get(verbosity)
    if from_flag is not None:
        return from_flag
    env = os.environ if environ is None else environ
    return parse_level(env.get(ENV_LOG_LEVEL))


def parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.strip().upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric


def setup_logging(level: int = logging.WARNING, *, console: Console | None = None) -> logging.Logger:
    """Attach a ``RichHandler`` writing to stderr to the ``dotpack`` logger."""

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=level <= logging.DEBUG,
        show_path=level <= logging.DEBUG,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(TOOL_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
