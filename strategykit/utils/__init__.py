"""
Utility helpers shared across StrategyKit packages.
"""

from .time import (
    round_time_by_timeframe,
    time_to_string,
    timeframe_to_minutes,
    timeframe_to_string,
)

__all__ = [
    "round_time_by_timeframe",
    "time_to_string",
    "timeframe_to_minutes",
    "timeframe_to_string",
]
