#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Logging configuration for the YouTube Lens backend.

Provides structured JSON logging, a keyword-context logger wrapper and the
setup function used by server.py. API keys travel inside request URLs and
payloads, so every formatted record is scrubbed of ``key=...`` values.
"""

import json
import logging
import logging.handlers
import re
import sys
from typing import Dict, Any, Optional

# Matches "key=AIza..." in URLs and "key": "AIza..." in dumped payloads
_KEY_PATTERN = re.compile(r"((?:[?&]|\b)key=|\"key\":\s*\")([^&\s\"]+)")


def redact_keys(text: str) -> str:
    """Mask API key values embedded in a log message."""
    return _KEY_PATTERN.sub(r"\1***", text)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Converts log records into JSON objects with standardized fields, so the
    serverless platform's log drain can index them.
    """

    def format(self, record):
        """Format the log record as a JSON object."""
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "line": record.lineno,
            "message": redact_keys(record.getMessage()),
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": redact_keys(str(record.exc_info[1])),
                "traceback": redact_keys(self.formatException(record.exc_info))
            }

        extra_data = getattr(record, "data", None)
        if isinstance(extra_data, dict):
            for key, value in extra_data.items():
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class RedactingFormatter(logging.Formatter):
    """Plain-text formatter that masks API keys."""

    def format(self, record):
        return redact_keys(super().format(record))


class StructuredLogger:
    """Logger that supports structured logging with additional context data."""

    def __init__(self, name: str, extra: Optional[Dict[str, Any]] = None):
        """Initialize the structured logger."""
        self.logger = logging.getLogger(name)
        self.extra = extra or {}

    def bind(self, **kwargs) -> "StructuredLogger":
        """Return a child logger carrying extra context on every record."""
        return StructuredLogger(self.logger.name, {**self.extra, **kwargs})

    def _log(self, level: int, message: str, exc_info=None, **kwargs):
        """Internal method to handle logging with extra data."""
        extra_data = {**self.extra}
        if kwargs:
            extra_data.update(kwargs)
        self.logger.log(level, message, exc_info=exc_info, extra={"data": extra_data})

    def debug(self, message: str, **kwargs):
        """Log a debug message with structured data."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log an info message with structured data."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log a warning message with structured data."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info=True, **kwargs):
        """Log an error message with structured data."""
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def critical(self, message: str, exc_info=True, **kwargs):
        """Log a critical message with structured data."""
        self._log(logging.CRITICAL, message, exc_info=exc_info, **kwargs)


def setup_logging(log_level_console=logging.INFO, log_level_file=logging.DEBUG,
                  structured=True, log_file: Optional[str] = "youtube_lens_backend.log"):
    """Configure logging to console and, when a path is given, a rotating file.

    Serverless deployments usually have a read-only filesystem; pass
    ``log_file=None`` there to log to stdout only.
    """
    root_logger = logging.getLogger()

    # Remove any existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if structured else RedactingFormatter(
        "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(log_level_file)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not create log file '{log_file}': {e}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level_console)
    root_logger.addHandler(console_handler)

    root_logger.setLevel(min(log_level_console, log_level_file))

    logging.getLogger(__name__).info("Logging setup complete.")
