"""Candle buffer cache keyed by symbol and timeframe."""

from typing import Dict, Optional

from ..core.managed import ManagedObject
from ..utils.time import Timeframe, timeframe_to_string
from .buffer import CandlesBuffer


class CandlesBufferManager(ManagedObject):
    """
    Creates each symbol/timeframe buffer once and hands out the cached one.

    Examples:
        >>> buffer = await context.candles.create_buffer("BTC/USDT", "1h")
        >>> buffer is await context.candles.create_buffer("BTC/USDT", 60)
        True
    """

    def __init__(self, context, id_prefix: str = "Global"):
        super().__init__(context, id_prefix)
        self._buffers: Dict[str, CandlesBuffer] = {}

    @staticmethod
    def buffer_key(symbol: str, timeframe: Timeframe) -> str:
        return f"{symbol}-{timeframe_to_string(timeframe)}"

    async def create_buffer(
        self,
        symbol: str,
        timeframe: Timeframe,
        max_length: Optional[int] = None,
        preload_count: Optional[int] = None,
    ) -> CandlesBuffer:
        key = self.buffer_key(symbol, timeframe)
        buffer = self._buffers.get(key)
        if buffer is not None:
            return buffer

        buffer = self.own(
            CandlesBuffer(
                self.context, symbol, timeframe, max_length=max_length, preload_count=preload_count
            )
        )
        self._buffers[key] = buffer
        await buffer.init()
        return buffer

    def get_buffer(self, symbol: str, timeframe: Timeframe) -> Optional[CandlesBuffer]:
        return self._buffers.get(self.buffer_key(symbol, timeframe))

    def __len__(self) -> int:
        return len(self._buffers)
