"""
Logging helpers for deduce_agent.

Every module logs through a child of the ``deduce_agent`` logger so a host
application can tune the whole package with one call.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_PACKAGE = "deduce_agent"
_root_logger = logging.getLogger(_PACKAGE)
_saved_level: int | None = None  # level to restore on enable()

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _coerce_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
    rich: bool = False,
) -> None:
    """
    Configure the package logger.

    Args:
        level: Log level name or number
        format: Log format string (ignored for the rich handler)
        stream: Output stream, stderr by default
        file: Optional log file path
        rich: Render console output with ``rich.logging.RichHandler``

    Example:
        from deduce_agent.logging import setup_logging

        setup_logging("DEBUG")                 # trace every parser transition
        setup_logging("INFO", file="agent.log")
    """
    level = _coerce_level(level)
    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    console: logging.Handler
    if rich:
        from rich.console import Console
        from rich.logging import RichHandler

        console = RichHandler(
            console=Console(file=stream or sys.stderr),
            show_path=False,
            rich_tracebacks=True,
        )
    else:
        console = logging.StreamHandler(stream or sys.stderr)
        console.setFormatter(formatter)
    console.setLevel(level)
    _root_logger.addHandler(console)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger, e.g. ``get_logger("parser")`` -> ``deduce_agent.parser``.
    """
    if name == _PACKAGE or name.startswith(f"{_PACKAGE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_PACKAGE}.{name}")


def set_level(level: str | int) -> None:
    """Change the package log level without touching handlers."""
    _root_logger.setLevel(_coerce_level(level))


def disable() -> None:
    """Silence all package logging, child loggers included."""
    global _saved_level
    if _saved_level is None:
        _saved_level = _root_logger.level
    _root_logger.setLevel(logging.CRITICAL + 1)


def enable() -> None:
    """Undo ``disable()``."""
    global _saved_level
    if _saved_level is not None:
        _root_logger.setLevel(_saved_level)
        _saved_level = None
