"""Logging configuration for gabagool-bench."""

import logging
import sys
from pathlib import Path
from typing import Optional

from .exceptions import GabagoolBenchException

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DEFAULT_FORMAT_NO_TIME = "%(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that adds exception context to log records as ``ctx_*`` attributes."""

    def format(self, record: logging.LogRecord) -> str:
        if record.exc_info and isinstance(record.exc_info[1], GabagoolBenchException):
            exc = record.exc_info[1]
            for key, value in exc.context.items():
                setattr(record, f"ctx_{key}", value)

        return super().format(record)


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
) -> None:
    """Configure root logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (uses default if None)
        include_timestamp: Whether to include timestamps in logs
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    if format_string is None:
        format_string = DEFAULT_FORMAT if include_timestamp else DEFAULT_FORMAT_NO_TIME
    formatter = StructuredFormatter(format_string)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(numeric_level)
    root.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(numeric_level)
        root.addHandler(file_handler)


__all__ = ["StructuredFormatter", "configure_logging"]
