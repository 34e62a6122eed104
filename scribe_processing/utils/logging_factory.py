"""Centralized logging factory for the processing core.

Initializes logging once for the whole process: a plain-text file handler in
the log directory plus a rich console handler. Modules keep using
``logging.getLogger(__name__)``; hosts call ``LoggingFactory.initialize`` (or
let ``get_logger`` do it lazily) to decide where records go.

Usage:
    LoggingFactory.initialize(log_dir=Path("logs"), level=logging.INFO)
    logger = LoggingFactory.get_logger(__name__)
    logger.info("Scheduler started")
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "scribe_processing"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingFactory:
    """Factory for creating and configuring loggers consistently.

    Class Attributes:
        _initialized: Flag to ensure single initialization
        _log_dir: Directory path where log files are stored
        _handlers: Handlers installed on the root logger by ``initialize``
    """

    _initialized = False
    _log_dir = Path("logs")
    _handlers: List[logging.Handler] = []

    @classmethod
    def initialize(
        cls,
        log_dir: Optional[Path] = None,
        level: int = logging.INFO,
        format_string: Optional[str] = None,
        log_to_file: bool = True,
        console: Optional[Console] = None,
    ) -> None:
        """Initialize the logging system once for the entire process.

        Subsequent calls are ignored until ``reset`` is called.

        Args:
            log_dir: Directory for ``processing.log``. Defaults to ``logs``.
            level: Level for the root and package loggers
            format_string: Format for the file handler
            log_to_file: Skip the file handler when False
            console: Rich console for the console handler (stderr by default)
        """
        if cls._initialized:
            return

        if log_dir:
            cls._log_dir = log_dir

        handlers: List[logging.Handler] = []
        if log_to_file:
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(cls._log_dir / "processing.log")
            file_handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
            handlers.append(file_handler)

        handlers.append(
            RichHandler(
                console=console or Console(stderr=True),
                show_time=True,
                show_path=level <= logging.DEBUG,
                rich_tracebacks=True,
            )
        )

        root = logging.getLogger()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        logging.getLogger(PACKAGE_LOGGER).setLevel(level)

        cls._handlers = handlers
        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Remove installed handlers so ``initialize`` can run again."""
        root = logging.getLogger()
        for handler in cls._handlers:
            root.removeHandler(handler)
            handler.close()
        cls._handlers = []
        cls._initialized = False

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger, initializing the logging system with defaults if needed."""
        if not cls._initialized:
            cls.initialize()
        return logging.getLogger(name)

    @classmethod
    def set_level(cls, name: str, level: int) -> None:
        logging.getLogger(name).setLevel(level)

    @classmethod
    def configure_verbose(cls, verbose: bool = False) -> None:
        """Switch the root and package loggers between DEBUG and INFO.

        Args:
            verbose: True for DEBUG, False for INFO
        """
        level = logging.DEBUG if verbose else logging.INFO
        logging.getLogger().setLevel(level)
        logging.getLogger(PACKAGE_LOGGER).setLevel(level)
        # Cache and retry chatter is only useful when debugging
        logging.getLogger(f"{PACKAGE_LOGGER}.cache").setLevel(level)
        logging.getLogger(f"{PACKAGE_LOGGER}.utils.retry").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Shorthand for ``LoggingFactory.get_logger``."""
    return LoggingFactory.get_logger(name)
