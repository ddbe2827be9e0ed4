"""
Logging for the cache, executor, reconciler and feature hooks.

Every module logs through get_logger(__name__). All loggers share one
handler, so the CLI can switch the whole process to rich console output or
to debug level in one call.
"""

import logging
import sys
from typing import Dict, Optional

from rich.logging import RichHandler

from config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _plain_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


class Logger:
    """Hands out per-module loggers wired to a single shared handler."""

    _loggers: Dict[str, logging.Logger] = {}
    _handler: Optional[logging.Handler] = None

    @classmethod
    def _shared_handler(cls) -> logging.Handler:
        if cls._handler is None:
            cls._handler = _plain_handler()
        return cls._handler

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get or create a logger at Config.LOG_LEVEL."""
        if name in cls._loggers:
            return cls._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(_level(Config.LOG_LEVEL))
        if not logger.handlers:
            logger.addHandler(cls._shared_handler())

        cls._loggers[name] = logger
        return logger

    @classmethod
    def set_level(cls, level: str):
        """Change the level of every logger handed out so far (used by --verbose)."""
        for logger in cls._loggers.values():
            logger.setLevel(_level(level))

    @classmethod
    def use_rich(cls, show_path: bool = False):
        """Replace the plain stdout handler with a rich one on every logger."""
        handler = RichHandler(show_path=show_path, rich_tracebacks=True, markup=False)
        handler.setFormatter(logging.Formatter('%(name)s: %(message)s'))

        previous = cls._handler
        cls._handler = handler
        for logger in cls._loggers.values():
            if previous is not None:
                logger.removeHandler(previous)
            logger.addHandler(handler)


def get_logger(module_name: str) -> logging.Logger:
    """Convenience function to get a logger for a module."""
    return Logger.get_logger(module_name)
