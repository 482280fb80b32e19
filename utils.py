#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
General utilities and helpers for the YouTube Lens backend.

Includes the ISO-8601 duration helpers, publish date formatting, number
coercion for API statistics, batching, the performance timer and API key
obfuscation for logs.
"""

import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, List, Optional, Sequence, TypeVar

import isodate

from config import config
from logging_config import StructuredLogger

logger = StructuredLogger(__name__)

T = TypeVar("T")


# --- Durations ---

def parse_duration_seconds(duration_iso: Optional[str]) -> int:
    """Convert an ISO-8601 duration (e.g. "PT1H2M3S") to total seconds.

    Absent components count as zero. Unparseable or empty input yields 0
    rather than raising, since the API occasionally omits durations
    (live streams, premieres).

    Args:
        duration_iso: Duration string from ``contentDetails.duration``

    Returns:
        int: Total seconds
    """
    if not duration_iso:
        return 0
    try:
        duration = isodate.parse_duration(duration_iso)
    except (isodate.ISO8601Error, ValueError, TypeError):
        logger.debug(f"Unparseable ISO duration: {duration_iso!r}")
        return 0
    if isinstance(duration, isodate.Duration):
        # Year/month components only appear on very long streams
        duration = duration.totimedelta(start=datetime(2000, 1, 1))
    return max(0, int(duration.total_seconds()))


def format_seconds(total_seconds: int) -> str:
    """Format seconds as "H:MM:SS" when an hour or longer, otherwise "M:SS"."""
    hours, remainder = divmod(max(0, int(total_seconds)), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_duration(duration_iso: Optional[str]) -> str:
    """Format an ISO-8601 duration for display.

    >>> format_duration("PT1H2M3S")
    '1:02:03'
    >>> format_duration("PT5M")
    '5:00'
    """
    return format_seconds(parse_duration_seconds(duration_iso))


def duration_text_to_seconds(text: Optional[str]) -> int:
    """Inverse of format_seconds: "1:02:03" -> 3723, "5:00" -> 300."""
    if not text:
        return 0
    try:
        parts = [int(part) for part in str(text).split(":")]
    except ValueError:
        return 0
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    return 0


# --- Dates ---

def parse_api_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an API timestamp ("2024-01-05T10:00:00Z") to an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Invalid timestamp format: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_api_datetime(value: datetime) -> str:
    """Format a datetime the way the YouTube API expects (RFC 3339, UTC, "Z")."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_published_at(value: Optional[str]) -> str:
    """Format a raw publish timestamp for display in the configured offset."""
    parsed = parse_api_datetime(value)
    if parsed is None:
        return ""
    display_tz = timezone(timedelta(hours=config.DISPLAY_UTC_OFFSET_HOURS))
    return parsed.astimezone(display_tz).strftime("%Y-%m-%d %H:%M")


# --- Numbers & collections ---

def to_int(value: Any) -> int:
    """Coerce an API statistic (usually a numeric string) to int, 0 if absent."""
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield successive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


def obfuscate_key(key: Optional[str]) -> str:
    """Return a log-safe representation of an API key."""
    if not key:
        return "<none>"
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"


# --- Performance Timer ---

@contextmanager
def performance_timer(operation_name: str, threshold_ms: float = 1000.0):
    """Context manager for timing operations with threshold-based logging.

    Logs at DEBUG normally, INFO above ``threshold_ms`` and WARNING above ten
    times the threshold.

    Args:
        operation_name: A descriptive name for the operation being timed.
        threshold_ms: Threshold in milliseconds.

    Yields:
        None
    """
    start_time = time.monotonic()
    try:
        yield
    finally:
        duration_ms = (time.monotonic() - start_time) * 1000
        log_data = {
            "operation": operation_name,
            "duration_ms": round(duration_ms, 2),
            "threshold_ms": threshold_ms
        }

        if duration_ms > threshold_ms * 10:
            logger.warning(f"SLOW OPERATION: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        elif duration_ms > threshold_ms:
            logger.info(f"Performance watch: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        else:
            logger.debug(f"Performance: '{operation_name}' completed in {duration_ms:.2f}ms", **log_data)
