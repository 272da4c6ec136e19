"""Logging setup for the recognizer CLI and scripts, and per-engine log levels."""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

# Engine debug_level values to logging levels
LEVELS = {
    "verbose": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Level of the engine call running in the current context, if any
_engine_level: ContextVar[Optional[int]] = ContextVar("micrline_engine_level", default=None)


def level_for(debug_level: str) -> int:
    if not isinstance(debug_level, str):
        return logging.INFO
    return LEVELS.get(debug_level.lower(), logging.INFO)


class EngineLevelFilter(logging.Filter):
    """Drop records below the debug level of the engine running in this context."""

    def filter(self, record: logging.LogRecord) -> bool:
        level = _engine_level.get()
        return level is None or record.levelno >= level


_ENGINE_FILTER = EngineLevelFilter()


def get_logger(name: str) -> logging.Logger:
    """Module logger that honours the calling engine's debug level."""
    logger = logging.getLogger(name)
    if _ENGINE_FILTER not in logger.filters:
        logger.addFilter(_ENGINE_FILTER)
    return logger


@contextmanager
def engine_log_level(level: int):
    """Apply an engine's debug level to records logged inside the block."""
    token = _engine_level.set(level)
    try:
        yield
    finally:
        _engine_level.reset(token)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of a log file to append to.
        console: Whether to log to stderr.
    """
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        try:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning("Cannot write log file %s: %s", log_file, e)

    return root_logger
