"""Indicator base: values recomputed lazily when the candle buffer changes."""

from dataclasses import dataclass
from typing import List, Optional

from ..candles.buffer import CandlesBuffer


@dataclass
class IndicatorValue:
    timestamp: int
    value: float


class BaseIndicator:
    """
    Indicator computed over the closes of a candle buffer.

    Subclasses implement calculate(). Results are cached until the buffer's
    version changes.
    """

    def __init__(self, buffer: CandlesBuffer, period: int):
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.buffer = buffer
        self.period = period
        self._values: List[IndicatorValue] = []
        self._version: Optional[int] = None

    def calculate(self) -> List[IndicatorValue]:
        raise NotImplementedError

    def get_indicator_values(self) -> List[IndicatorValue]:
        if self._version != self.buffer.version:
            self._values = self.calculate()
            self._version = self.buffer.version
        return list(self._values)

    def get_value(self, shift: int = 0) -> Optional[float]:
        """Value `shift` bars back from the latest one, None if not available."""
        values = self.get_indicator_values()
        if shift < 0 or shift >= len(values):
            return None
        return values[-1 - shift].value
