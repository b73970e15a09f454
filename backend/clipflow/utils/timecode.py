"""
SRT timecode helpers

Segment boundaries from the theme analysis step arrive as `HH:MM:SS,mmm`.
"""

import re
from typing import Union

_SRT_PATTERN = re.compile(r"^(\d{1,2}):(\d{2}):(\d{2})(?:[,.](\d{1,3}))?$")


def srt_to_seconds(value: str) -> float:
    """Convert `HH:MM:SS,mmm` (or `HH:MM:SS.mmm`) to seconds"""
    match = _SRT_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid SRT timestamp: {value!r}")

    hours, minutes, seconds, millis = match.groups()
    millis = (millis or "0").ljust(3, "0")
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def to_seconds(value: Union[int, float, str]) -> float:
    """Accept seconds (number or numeric string) or an SRT timestamp"""
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except ValueError:
        return srt_to_seconds(value)
