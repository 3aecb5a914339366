"""
Indicator facade.

Indicators are cached per symbol, timeframe and period; their candle buffers
come from the runtime's CandlesBufferManager and are created on first use.
"""

from typing import Dict, List, Optional, Type

from ..core.managed import ManagedObject
from ..utils.time import Timeframe, timeframe_to_string
from .base import BaseIndicator, IndicatorValue
from .rsi import RelativeStrengthIndex
from .sma import SimpleMovingAverage


class Indicators(ManagedObject):
    """
    Cached access to indicator values.

    Examples:
        >>> await context.indicators.sma("BTC/USDT", "1h", period=20)
        101.25
        >>> await context.indicators.rsi("BTC/USDT", "1h", period=14, shift=1)
        48.7
    """

    def __init__(self, context, id_prefix: str = "Global"):
        super().__init__(context, id_prefix)
        self._indicators: Dict[str, BaseIndicator] = {}

    async def _get(
        self, kind: Type[BaseIndicator], symbol: str, timeframe: Timeframe, period: int
    ) -> BaseIndicator:
        key = f"{kind.__name__}_{symbol}_{timeframe_to_string(timeframe)}_{period}"
        indicator = self._indicators.get(key)
        if indicator is None:
            buffer = await self.context.candles.create_buffer(symbol, timeframe)
            indicator = self._indicators[key] = kind(buffer, period)
        return indicator

    async def sma(
        self, symbol: str, timeframe: Timeframe, period: int = 14, shift: int = 0
    ) -> Optional[float]:
        indicator = await self._get(SimpleMovingAverage, symbol, timeframe, period)
        return indicator.get_value(shift)

    async def sma_values(
        self, symbol: str, timeframe: Timeframe, period: int = 14
    ) -> List[IndicatorValue]:
        indicator = await self._get(SimpleMovingAverage, symbol, timeframe, period)
        return indicator.get_indicator_values()

    async def rsi(
        self, symbol: str, timeframe: Timeframe, period: int = 14, shift: int = 0
    ) -> Optional[float]:
        indicator = await self._get(RelativeStrengthIndex, symbol, timeframe, period)
        return indicator.get_value(shift)

    async def rsi_values(
        self, symbol: str, timeframe: Timeframe, period: int = 14
    ) -> List[IndicatorValue]:
        indicator = await self._get(RelativeStrengthIndex, symbol, timeframe, period)
        return indicator.get_indicator_values()
