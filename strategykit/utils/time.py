"""
Time and timeframe helpers.

Host time is expressed in milliseconds since the epoch. Timeframes are
accepted either as minutes (15) or as strings ('15m', '1h', '1d').
"""

from datetime import datetime, timezone
from typing import Optional, Union


Timeframe = Union[int, str]

_UNIT_MINUTES = {"m": 1, "h": 60, "d": 1440, "w": 10080}


def time_to_string(timestamp: Optional[int]) -> Optional[str]:
    """
    Format a millisecond timestamp as a UTC string.

    Examples:
        >>> time_to_string(0)
        '1970-01-01 00:00:00'
    """
    if timestamp is None:
        return None
    moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def timeframe_to_minutes(timeframe: Timeframe) -> int:
    """
    Convert a timeframe to minutes.

    Examples:
        >>> timeframe_to_minutes("4h")
        240
        >>> timeframe_to_minutes(15)
        15

    Raises:
        ValueError: For unknown units or non-positive values
    """
    if isinstance(timeframe, int) and not isinstance(timeframe, bool):
        minutes = timeframe
    elif isinstance(timeframe, str) and len(timeframe) >= 2:
        value, unit = timeframe[:-1], timeframe[-1].lower()
        if unit not in _UNIT_MINUTES or not value.isdigit():
            raise ValueError(f"Unknown timeframe: {timeframe!r}")
        minutes = int(value) * _UNIT_MINUTES[unit]
    else:
        raise ValueError(f"Unknown timeframe: {timeframe!r}")

    if minutes <= 0:
        raise ValueError(f"Timeframe must be positive, got {timeframe!r}")
    return minutes


def timeframe_to_string(timeframe: Timeframe) -> str:
    """
    Convert a timeframe to its canonical string form.

    Examples:
        >>> timeframe_to_string(60)
        '1h'
        >>> timeframe_to_string("90m")
        '90m'
    """
    minutes = timeframe_to_minutes(timeframe)
    for unit, size in (("w", 10080), ("d", 1440), ("h", 60)):
        if minutes % size == 0:
            return f"{minutes // size}{unit}"
    return f"{minutes}m"


def round_time_by_timeframe(timestamp: int, timeframe: Timeframe) -> int:
    """Floor a millisecond timestamp to the start of its timeframe bar."""
    period = timeframe_to_minutes(timeframe) * 60 * 1000
    return timestamp - timestamp % period
