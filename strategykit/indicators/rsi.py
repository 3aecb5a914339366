"""Relative strength index with Wilder smoothing."""

from typing import List

from .base import BaseIndicator, IndicatorValue


def _rsi(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


class RelativeStrengthIndex(BaseIndicator):
    """
    RSI over `period` close-to-close changes.

    The first average is the plain mean of the first `period` changes, later
    ones use Wilder's smoothing: avg = (prev * (period - 1) + current) / period.
    A flat series reads 50, a series without losses reads 100.
    """

    def calculate(self) -> List[IndicatorValue]:
        candles = self.buffer.get_candles()
        if len(candles) <= self.period:
            return []

        gains, losses = [], []
        for i in range(1, len(candles)):
            change = candles[i].close - candles[i - 1].close
            gains.append(max(change, 0.0))
            losses.append(max(-change, 0.0))

        avg_gain = sum(gains[: self.period]) / self.period
        avg_loss = sum(losses[: self.period]) / self.period
        values = [IndicatorValue(candles[self.period].timestamp, _rsi(avg_gain, avg_loss))]

        for i in range(self.period, len(gains)):
            avg_gain = (avg_gain * (self.period - 1) + gains[i]) / self.period
            avg_loss = (avg_loss * (self.period - 1) + losses[i]) / self.period
            values.append(IndicatorValue(candles[i + 1].timestamp, _rsi(avg_gain, avg_loss)))

        return values
