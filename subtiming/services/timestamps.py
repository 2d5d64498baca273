"""Timestamp parsing and formatting for each subtitle format."""

from __future__ import annotations

import re
from typing import Dict, Optional, Pattern

from subtiming.services.errors import MalformedTimestamp

FORMATS = ("srt", "vtt", "ass", "tsv")

_PATTERNS: Dict[str, Pattern[str]] = {
    # Some SRT writers use "." instead of ",", accept it on read.
    "srt": re.compile(r"^(\d+):(\d{2}):(\d{2})[,.](\d{3})$"),
    "vtt": re.compile(r"^(?:(\d+):)?(\d{2}):(\d{2})(?:\.(\d{1,3}))?$"),
    "ass": re.compile(r"^(\d+):(\d{2}):(\d{2})\.(\d{2})$"),
    "tsv": re.compile(r"^(\d+)(?:\.(\d+))?$"),
}


def ms_to_seconds(value: int) -> float:
    return value / 1000.0


def seconds_to_ms(value: float) -> int:
    return int(round(float(value) * 1000))


def _clock_ms(hours: str, minutes: str, seconds: str) -> int:
    return ((int(hours) * 60 + int(minutes)) * 60 + int(seconds)) * 1000


def parse_timestamp(text: str, fmt: str, line: Optional[int] = None) -> int:
    """Convert a timestamp in the given format to milliseconds.

    Raises MalformedTimestamp when the text does not match the grammar;
    ``line`` is carried into the error for diagnostics.
    """
    pattern = _PATTERNS.get(fmt)
    if pattern is None:
        raise ValueError(f"Unknown subtitle format: {fmt}")
    value = str(text).strip()
    match = pattern.match(value)
    if not match:
        raise MalformedTimestamp(value, fmt, line)
    if fmt == "tsv":
        whole, fraction = match.groups()
        fraction = (fraction or "0")[:3].ljust(3, "0")
        return int(whole) * 1000 + int(fraction)
    hours, minutes, seconds, fraction = match.groups()
    if int(minutes) > 59 or int(seconds) > 59:
        raise MalformedTimestamp(value, fmt, line)
    base = _clock_ms(hours or "0", minutes, seconds)
    if fmt == "ass":
        return base + int(fraction) * 10
    return base + int((fraction or "0").ljust(3, "0"))


def format_timestamp(ms: int, fmt: str) -> str:
    """Format milliseconds as a timestamp for the given format."""
    total_ms = max(0, int(ms))
    if fmt == "tsv":
        return f"{total_ms / 1000.0:.6f}"
    if fmt == "ass":
        total_cs = int(round(total_ms / 10.0))
        hours, remainder = divmod(total_cs, 3600 * 100)
        minutes, remainder = divmod(remainder, 60 * 100)
        secs, cs = divmod(remainder, 100)
        return f"{hours}:{minutes:02}:{secs:02}.{cs:02}"
    hours, remainder = divmod(total_ms, 3600 * 1000)
    minutes, remainder = divmod(remainder, 60 * 1000)
    secs, millis = divmod(remainder, 1000)
    if fmt == "srt":
        return f"{hours:02}:{minutes:02}:{secs:02},{millis:03}"
    if fmt == "vtt":
        return f"{hours:02}:{minutes:02}:{secs:02}.{millis:03}"
    raise ValueError(f"Unknown subtitle format: {fmt}")
