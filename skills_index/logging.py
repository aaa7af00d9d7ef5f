"""
Logging utilities for skills-index.

All modules log through children of the ``skills_index`` logger so a single
call to :func:`setup_logging` controls the whole package.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO, Union

_root_logger = logging.getLogger("skills_index")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: Union[str, int] = "INFO",
    format: Optional[str] = None,
    stream: Optional[TextIO] = None,
    file: Optional[str] = None,
) -> None:
    """
    Configure logging for skills-index.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...) or int
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to also write logs to
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger.

    Accepts either a dotted module name (``__name__``) or a short
    component name such as ``"watcher"``.
    """
    if name == "skills_index" or name.startswith("skills_index."):
        return logging.getLogger(name)
    return logging.getLogger(f"skills_index.{name}")


def set_level(level: Union[str, int]) -> None:
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    _root_logger.setLevel(level)
