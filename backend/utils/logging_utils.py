"""
Logging utilities for the node daemon and the viewer.

Provides a single console handler with a compact, optionally colored
format, plus a timer context manager that attaches duration and record
counts to completion messages.
"""

import logging
import sys
import time
from typing import Any, Dict, Optional, TextIO

# Third-party loggers that are too chatty at the root level
QUIET_LOGGERS = {
    'uvicorn': logging.INFO,
    'uvicorn.access': logging.WARNING,
    'httpx': logging.WARNING,
    'httpcore': logging.WARNING,
}


class ColoredFormatter(logging.Formatter):
    """``time | LEVEL | module.func | message [extras]``, level colored on a TTY."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    # Record attributes rendered as a trailing [key=value, ...] block
    EXTRA_KEYS = ('duration_ms', 'record_count', 'node', 'endpoint')

    def __init__(self, use_color: bool = True):
        super().__init__(datefmt='%Y-%m-%d %H:%M:%S')
        self.use_color = use_color

    def _level(self, levelname: str) -> str:
        padded = f"{levelname:8}"
        if not self.use_color:
            return padded
        return f"{self.COLORS.get(levelname, '')}{padded}{self.RESET}"

    @staticmethod
    def _extra_field(key: str, value: Any) -> str:
        if key == 'duration_ms':
            return f"duration={value:.1f}ms"
        if key == 'record_count':
            return f"records={value}"
        return f"{key}={value}"

    def format(self, record):
        stamp = f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d}"
        where = record.module if record.funcName == '<module>' else f"{record.module}.{record.funcName}"

        fields = [
            self._extra_field(key, getattr(record, key))
            for key in self.EXTRA_KEYS
            if hasattr(record, key)
        ]
        suffix = f" [{', '.join(fields)}]" if fields else ""

        line = f"{stamp} | {self._level(record.levelname)} | {where:30} | {record.getMessage()}{suffix}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """
    Install the console handler on the root logger.

    Any handler already on the root logger is replaced, so calling this twice
    does not duplicate output.

    Args:
        level: Level name such as DEBUG or INFO
        stream: Output stream, stdout by default (the viewer passes stderr)
    """
    stream = stream or sys.stdout
    numeric_level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColoredFormatter(use_color=stream.isatty()))
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger (typically for ``__name__``)."""
    return logging.getLogger(name)


class LogTimer:
    """
    Time a block and log its start and outcome.

    Usage:
        with LogTimer(logger, "Aggregation cycle") as timer:
            ...
            timer.set_record_count(len(nodes))

    The completion record carries ``duration_ms`` and any fields set on the
    timer as log extras. A failure is logged at ERROR and still propagates.
    Cancellation is not logged.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.fields: Dict[str, Any] = {}

    @property
    def record_count(self) -> Optional[int]:
        return self.fields.get('record_count')

    @property
    def elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000

    def set_record_count(self, count: int) -> None:
        self.fields['record_count'] = count

    def add_info(self, key: str, value: Any) -> None:
        """Attach an extra field to the completion record."""
        self.fields[key] = value

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        extra = {'duration_ms': self.elapsed_ms, **self.fields}
        if exc_type is None:
            self.logger.log(self.level, f"Completed: {self.operation}", extra=extra)
        elif issubclass(exc_type, Exception):
            self.logger.error(f"Failed: {self.operation} - {exc_val}", extra=extra)
        return False
