"""Simple moving average of closes."""

from typing import List

from .base import BaseIndicator, IndicatorValue


class SimpleMovingAverage(BaseIndicator):
    """
    Rolling mean of the last `period` closes.

    Examples:
        >>> sma = SimpleMovingAverage(buffer, period=3)  # closes 1, 2, 3, 4
        >>> [v.value for v in sma.get_indicator_values()]
        [2.0, 3.0]
    """

    def calculate(self) -> List[IndicatorValue]:
        candles = self.buffer.get_candles()
        if len(candles) < self.period:
            return []

        values = []
        window_sum = sum(candle.close for candle in candles[: self.period])
        values.append(IndicatorValue(candles[self.period - 1].timestamp, window_sum / self.period))

        for i in range(self.period, len(candles)):
            window_sum += candles[i].close - candles[i - self.period].close
            values.append(IndicatorValue(candles[i].timestamp, window_sum / self.period))

        return values
