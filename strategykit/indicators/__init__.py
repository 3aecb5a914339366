"""
Technical indicators over candle buffers.

- SimpleMovingAverage, RelativeStrengthIndex
- Indicators: cached facade used by strategies
"""

from .base import BaseIndicator, IndicatorValue
from .indicators import Indicators
from .rsi import RelativeStrengthIndex
from .sma import SimpleMovingAverage

__all__ = [
    "BaseIndicator",
    "IndicatorValue",
    "Indicators",
    "RelativeStrengthIndex",
    "SimpleMovingAverage",
]
