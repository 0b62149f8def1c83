# Copyright 2026 appinsights-exporter Contributors
# SPDX-License-Identifier: Apache-2.0

"""Clock helpers and the wire formats for timestamps and durations.

The ingestion service expects:
- format_timestamp(): UTC ISO-8601 with microsecond precision, e.g.
  ``2021-03-04T05:06:07.123456Z``
- format_duration(): ``D.HH:MM:SS.ffffff`` where days are not padded

Both truncate nanoseconds to whole microseconds.
"""

import time
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def wall_clock_ns() -> int:
    """Return current wall-clock time in nanoseconds since epoch."""
    return time.time_ns()


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(epoch_ns: int) -> str:
    """Format a nanosecond epoch timestamp as the envelope ``time`` field."""
    stamp = _EPOCH + timedelta(microseconds=epoch_ns // 1000)
    return stamp.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def format_duration(elapsed_ns: int) -> str:
    """Format an elapsed time in nanoseconds as ``D.HH:MM:SS.ffffff``.

    Negative durations (end before start) are clamped to zero.
    """
    if elapsed_ns < 0:
        elapsed_ns = 0
    seconds, micros = divmod(elapsed_ns // 1000, 1_000_000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    return f"{days}.{hours:02d}:{minutes:02d}:{seconds:02d}.{micros:06d}"
