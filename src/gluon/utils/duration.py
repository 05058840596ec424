# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/utils/duration.py

from __future__ import annotations

import re
from datetime import timedelta

_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def _non_negative(delta: timedelta, raw) -> timedelta:
    if delta < timedelta(0):
        raise ValueError(f"duration '{raw}' must not be negative")
    return delta


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """
    Parse durations the way operators type them on the command line.

    >>> parse_duration("30s")
    datetime.timedelta(seconds=30)
    >>> parse_duration("1m30s")
    datetime.timedelta(seconds=90)
    >>> parse_duration(5)
    datetime.timedelta(seconds=5)
    """
    if isinstance(value, timedelta):
        return _non_negative(value, value)
    if isinstance(value, (int, float)):
        return _non_negative(timedelta(seconds=value), value)

    text = value.strip().replace(" ", "")
    if not text:
        raise ValueError("empty duration")
    if text.startswith("-"):
        raise ValueError(f"duration '{value}' must not be negative")
    try:
        return timedelta(seconds=float(text))
    except (ValueError, OverflowError):
        pass

    pos = 0
    total = 0.0
    for m in _PART_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ValueError(f"invalid duration '{value}' (use e.g. 30s, 2m, 1m30s)")
    return timedelta(seconds=total)


def format_duration(value: timedelta) -> str:
    seconds = value.total_seconds()
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds:g}s"
