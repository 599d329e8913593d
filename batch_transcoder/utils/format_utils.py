"""
This module contains helper functions for formatting and parsing values.
These functions are used throughout the application, particularly in logging and
in the plan resolver, to present time durations, file sizes and bitrates in a
clear and consistent way.
"""

import re
from datetime import timedelta
from typing import Optional, Union

_BITRATE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)(?:b|bps)?\s*$")


def format_timedelta(td_object: timedelta) -> str:
    """
    Formats a timedelta object into a "HH:MM:SS" string.

    Args:
        td_object: The timedelta object to format.

    Returns:
        A string representing the timedelta in HH:MM:SS format.
        For example, a timedelta of 7261 seconds becomes "02:01:01".
        Returns "00:00:00" if the input is not a valid timedelta object.
    """
    if not isinstance(td_object, timedelta):
        return "00:00:00"

    total_seconds = int(td_object.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def formatted_size(size_bytes: int) -> str:
    """
    Converts a size in bytes to a human-readable string (e.g., B, KB, MB, GB, TB).

    Args:
        size_bytes: The size of the file in bytes.

    Returns:
        A formatted string with the appropriate unit.
        For example, 1536 becomes "1.50 KB", and 2097152 becomes "2 MB".
    """
    if size_bytes < 0:
        size_bytes = 0

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    factor = 1024.0

    if size_bytes == 0:
        return "0 B"

    for unit in units:
        if size_bytes < factor:
            if unit == "B":
                return f"{size_bytes} {unit}"
            # Clean up ".00" for whole numbers (e.g., "2.00 MB" -> "2 MB").
            return f"{size_bytes:.2f} {unit}".replace(".00", "")
        size_bytes /= factor

    return f"{size_bytes:.2f} {units[-1]}".replace(".00", "")


def parse_bitrate(value: Union[str, int, None]) -> Optional[int]:
    """
    Parses an ffmpeg-style bitrate ("192k", "2M", "128000") into bits per second.

    Args:
        value: The bitrate as a string or integer.

    Returns:
        The bitrate in bits per second, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None

    match = _BITRATE_PATTERN.match(str(value))
    if not match:
        return None
    number, unit = float(match.group(1)), match.group(2).lower()
    multiplier = {"": 1, "k": 1000, "m": 1_000_000}[unit]
    bits = int(number * multiplier)
    return bits if bits > 0 else None


def format_bitrate(bits_per_second: int) -> str:
    """
    Formats bits per second in ffmpeg's short syntax, e.g. 192000 -> "192k".

    Values that are not a whole number of kilobits are returned as plain integers.
    """
    if bits_per_second % 1000 == 0:
        return f"{bits_per_second // 1000}k"
    return str(bits_per_second)
