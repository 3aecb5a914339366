"""
Candle buffer built from host ticks.

The buffer is preloaded with closed bars from the host history and then
maintained tick by tick: the forming bar is updated in place, and a new bar
is opened when the tick time crosses a timeframe boundary.
"""

from collections import deque
from typing import TYPE_CHECKING, Any, Deque, List, Optional

from ..core.event_bus import EventType
from ..core.managed import ManagedObject
from ..core.models import Candle
from ..utils.time import (
    Timeframe,
    round_time_by_timeframe,
    time_to_string,
    timeframe_to_minutes,
    timeframe_to_string,
)

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


class CandlesBuffer(ManagedObject):
    """
    Bounded OHLC history of one symbol and timeframe.

    Attributes:
        symbol (str): Symbol the bars are built for
        timeframe (str): Canonical timeframe ('15m', '1h', ...)
        max_length (int): Bars kept; the oldest bar is dropped first
        preload_count (int): Bars requested from the host history on init
        version (int): Incremented on every change, used by indicator caches

    Examples:
        >>> buffer = CandlesBuffer(context, "BTC/USDT", "1h")
        >>> await buffer.init()
        >>> buffer.get_candles()[-1].close
        101.5
    """

    def __init__(
        self,
        context: "RuntimeContext",
        symbol: str,
        timeframe: Timeframe,
        max_length: Optional[int] = None,
        preload_count: Optional[int] = None,
    ):
        super().__init__(context, symbol)
        self.symbol = symbol
        self.timeframe = timeframe_to_string(timeframe)
        self.timeframe_minutes = timeframe_to_minutes(timeframe)
        self.max_length = max_length or context.config.candles_max_length
        self.preload_count = (
            preload_count if preload_count is not None else context.config.candles_preload_count
        )
        self._candles: Deque[Candle] = deque(maxlen=self.max_length)
        self._current: Optional[Candle] = None
        self.is_initialized = False
        self.last_time_updated: Optional[int] = None
        self.version = 0

    async def init(self) -> None:
        """Preload history and start following ticks. Idempotent."""
        if self.is_initialized:
            return

        self.subscribe(EventType.ON_BEFORE_TICK, self.update_buffer)
        self.is_initialized = True

        if self.preload_count <= 0:
            return

        now = self.context.host.current_time(self.symbol)
        start_time = now - self.preload_count * self.timeframe_minutes * 60 * 1000

        try:
            history = await self.context.host.get_history(
                self.symbol, self.timeframe, start_time, self.preload_count
            )
        except Exception as e:
            self.logger.error(
                f"CandlesBuffer::init Failed to load history for {self.symbol} "
                f"{self.timeframe}: {e!r}"
            )
            return

        self._candles.extend(history)
        self.version += 1

        first = self._candles[0].timestamp if self._candles else None
        last = self._candles[-1].timestamp if self._candles else None
        self.logger.info(
            f"CandlesBuffer::init Candles buffer initialized for {self.symbol} {self.timeframe}: "
            f"{len(self._candles)} bar(s) {time_to_string(first) or 'no data'} - "
            f"{time_to_string(last) or 'no data'}"
        )

    async def update_buffer(self, event: Any = None) -> None:
        host = self.context.host
        self.last_time_updated = host.current_time()

        bar_time = round_time_by_timeframe(host.current_time(self.symbol), self.timeframe_minutes)
        price = host.close(self.symbol)

        current = self._current
        if current is None and self._candles and self._candles[-1].timestamp == bar_time:
            current = self._current = self._candles[-1]

        if current is not None and current.timestamp >= bar_time:
            current.update(price)
        else:
            previous = current or (self._candles[-1] if self._candles else None)
            open_price = previous.close if previous is not None else price
            self._current = Candle(
                timestamp=bar_time,
                open=open_price,
                high=max(open_price, price),
                low=min(open_price, price),
                close=price,
            )
            self._candles.append(self._current)

        self.version += 1

    def get_candles(self) -> List[Candle]:
        return list(self._candles)

    def get_closes(self) -> List[float]:
        return [candle.close for candle in self._candles]

    @property
    def current_candle(self) -> Optional[Candle]:
        return self._current

    def clear(self) -> None:
        self._candles.clear()
        self._current = None
        self.version += 1

    def __len__(self) -> int:
        return len(self._candles)
