#!/usr/bin/env python3
"""
Logging utilities for dotstrap.

This module provides a centralized logging system with rich console output,
a plain colored style matching classic shell installers, rotating file logs
and a collector that remembers every warning emitted during a run.
"""

import sys
import logging
import logging.handlers
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from colorama import init as colorama_init, Fore, Style
from rich.console import Console
from rich.logging import RichHandler

colorama_init()

ROOT_LOGGER_NAME = 'dotstrap'

LOG_STYLES = ('rich', 'plain')


class ColoredFormatter(logging.Formatter):
    """Formatter producing the classic installer look: ``==> message``."""

    PREFIXES = {
        'DEBUG': (Fore.CYAN, 'debug:'),
        'INFO': (Fore.BLUE, '==>'),
        'WARNING': (Fore.YELLOW, 'Warning:'),
        'ERROR': (Fore.RED, 'Error:'),
        'CRITICAL': (Fore.MAGENTA, 'Error:'),
    }

    def __init__(self, use_colors: bool = True):
        super().__init__('%(message)s')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color, prefix = self.PREFIXES.get(record.levelname, ('', ''))

        if not self.use_colors:
            return f"{prefix} {message}"

        if record.levelno == logging.INFO:
            return f"{color}{prefix}{Style.RESET_ALL} {Style.BRIGHT}{message}{Style.RESET_ALL}"
        return f"{color}{prefix}{Style.RESET_ALL} {message}"


class WarningCollector(logging.Handler):
    """Handler that keeps the text of every warning it sees."""

    def __init__(self):
        super().__init__(level=logging.WARNING)
        self.messages: List[str] = []

    def emit(self, record: logging.LogRecord):
        if record.levelno == logging.WARNING:
            self.messages.append(record.getMessage())


class DotstrapLogger:
    """Main logger class for dotstrap."""

    def __init__(self, name: str = ROOT_LOGGER_NAME):
        self.name = name
        self.logger = logging.getLogger(name)

        # Only the root package logger owns handlers, children propagate
        if name != ROOT_LOGGER_NAME or self.logger.handlers:
            return

        self.logger.setLevel(logging.INFO)
        self._setup_handlers()

    def _setup_handlers(self, style: str = 'rich'):
        """Setup logging handlers for console and file output."""
        self.logger.addHandler(self._make_console_handler(style))
        self._setup_file_handler()

    @staticmethod
    def _make_console_handler(style: str) -> logging.Handler:
        if style == 'plain':
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(ColoredFormatter(use_colors=sys.stderr.isatty()))
        else:
            handler = RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
                rich_tracebacks=True
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(logging.INFO)
        handler.set_name('console')
        return handler

    def _setup_file_handler(self):
        """Setup rotating file logging handler."""
        try:
            log_dir = Path.home() / '.config' / 'dotstrap' / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / 'dotstrap.log',
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=5
            )
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - "
                "%(filename)s:%(lineno)d - %(message)s",
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            file_handler.setLevel(logging.DEBUG)
            file_handler.set_name('file')
            self.logger.addHandler(file_handler)

        except OSError as e:
            # Console logging still works without a writable home
            self.logger.debug(f"Could not setup file logging: {e}")

    def set_style(self, style: str):
        """Swap the console handler for the given style."""
        for handler in list(self.logger.handlers):
            if handler.get_name() == 'console':
                self.logger.removeHandler(handler)
        self.logger.addHandler(self._make_console_handler(style))

    def set_level(self, level: str):
        """Set the logging level."""
        log_level = getattr(logging, level.upper(), logging.INFO)
        if not isinstance(log_level, int):
            log_level = logging.INFO

        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            if handler.get_name() == 'console':
                handler.setLevel(log_level)

    def debug(self, message: str, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def success(self, message: str, *args, **kwargs):
        """Log a completed step."""
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs):
        self.logger.critical(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs):
        self.logger.exception(message, *args, **kwargs)


_loggers: Dict[str, DotstrapLogger] = {}


def get_logger(name: str = ROOT_LOGGER_NAME) -> DotstrapLogger:
    """Get or create a logger instance."""
    if name not in _loggers:
        if name != ROOT_LOGGER_NAME:
            get_logger(ROOT_LOGGER_NAME)
        _loggers[name] = DotstrapLogger(name)
    return _loggers[name]


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[Path] = None,
    verbose: bool = False,
    style: str = 'rich'
):
    """Setup logging configuration."""
    if verbose:
        level = 'DEBUG'

    logger = get_logger()
    if style != 'rich':
        logger.set_style(style)
    logger.set_level(level)

    if log_file:
        try:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - "
                "%(filename)s:%(lineno)d - %(message)s",
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            logger.logger.addHandler(file_handler)
            logger.debug(f"Logging to file: {log_file}")

        except OSError as e:
            logger.warning(f"Could not setup custom log file {log_file}: {e}")


@contextmanager
def collect_warnings() -> Iterator[WarningCollector]:
    """Record warnings logged anywhere under the package logger."""
    collector = WarningCollector()
    root = get_logger().logger
    root.addHandler(collector)
    try:
        yield collector
    finally:
        root.removeHandler(collector)
