"""
Candle buffers.

- CandlesBuffer: tick-driven OHLC bars of one symbol/timeframe
- CandlesBufferManager: per symbol/timeframe buffer cache
"""

from .buffer import CandlesBuffer
from .manager import CandlesBufferManager

__all__ = [
    "CandlesBuffer",
    "CandlesBufferManager",
]
