"""
Centralized logging configuration for the media pipeline
"""

import logging
import os
import sys
from typing import Optional
from datetime import datetime


DEFAULT_LOG_FILE = os.getenv("LOG_FILE", "clipflow.log")


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for different log levels"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        # Format a copy so the file handler never sees the escape codes
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(
        fmt='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    return handler


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Don't add handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    logger.addHandler(_console_handler())

    try:
        logger.addHandler(_file_handler(DEFAULT_LOG_FILE))
    except OSError as e:
        # If file logging fails, just use console
        logger.warning(f"Could not create file handler: {e}")

    # Handlers are attached here; the root logger would print twice
    logger.propagate = False
    return logger


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Setup global logging configuration

    Args:
        level: Default log level
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler())

    if log_file:
        try:
            root_logger.addHandler(_file_handler(log_file))
        except OSError as e:
            print(f"Warning: Could not create file handler for {log_file}: {e}")


class LoggerMixin:
    """Mixin class to add logging capabilities to any class"""

    @property
    def logger(self) -> logging.Logger:
        return get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")


class PerformanceLogger:
    """Logger for performance monitoring and metrics"""

    def __init__(self, name: str):
        self.logger = get_logger(f"perf.{name}")
        self.start_time = None
        self.operation = None

    def start(self, operation: str):
        """Start timing an operation"""
        self.operation = operation
        self.start_time = datetime.now()
        self.logger.info(f"Starting {operation}")

    def end(self, additional_info: Optional[str] = None) -> float:
        """End timing, log the result and return the elapsed seconds"""
        if self.start_time is None:
            self.logger.warning("end() called without start()")
            return 0.0

        duration = (datetime.now() - self.start_time).total_seconds()
        info_str = f" - {additional_info}" if additional_info else ""
        self.logger.info(f"Completed {self.operation} in {duration:.3f}s{info_str}")
        self.start_time = None
        return duration

    def metric(self, name: str, value: float, unit: str = ""):
        """Log a performance metric"""
        unit_str = f" {unit}" if unit else ""
        self.logger.info(f"METRIC | {name}: {value}{unit_str}")
