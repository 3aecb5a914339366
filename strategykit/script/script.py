"""
Strategy script lifecycle.

Script is the base class of user strategies. The host drives it through the
run_* entry points; each one calls the matching user hook and then emits the
corresponding bus event so services and components can react:

    start()                -> on_init()        -> ON_INIT
    run_on_tick(data)      -> ON_BEFORE_TICK, on_tick(), ON_TICK, symbol tick events
    run_on_order_change()  -> on_order_change(), symbol order event, ON_ORDER_CHANGE
    run_on_timer()         -> on_timer()       -> ON_TIMER
    run_args_update(args)  -> on_args_update() -> ON_ARGS_UPDATE
    run_on_report_action() -> on_report_action() -> ON_REPORT_ACTION
    stop()                 -> ON_BEFORE_STOP, ON_STOP, on_stop(), ON_AFTER_STOP

Errors raised by hooks are logged; once the runtime is force-stopped they
propagate to the host as ForcedStopError.
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Set

from ..config import RuntimeConfig
from ..core.errors import ForcedStopError, StrategyKitError
from ..core.event_bus import EventType
from ..core.managed import ManagedObject
from ..core.models import Order
from ..exchange.exchange import Exchange
from ..host.base import HostAPI
from ..runtime import RuntimeContext


class Script(ManagedObject):
    """
    Base class for strategies.

    Subclasses override the on_* hooks. Components created by the strategy
    should be owned (self.own(...)) so stop() tears them down.

    Attributes:
        symbols (List[str]): Traded symbols
        iterator (int): Processed ticks and timer calls
        balance_total (float): Balance fetched on start()
        balance_free (float): Free balance fetched on start()
        max_orders (int): Remaining order updates accepted in tester mode

    Examples:
        >>> class Bot(Script):
        ...     async def on_init(self):
        ...         self.exchange = await self.create_exchange(self.symbols[0])
        ...
        ...     async def on_tick(self, data):
        ...         if self.exchange.close() < 95:
        ...             await self.exchange.buy_market(0.01, tp=110, sl=90)
        >>> bot = Bot(host)
        >>> await bot.start()
        >>> await bot.run_on_tick()
        >>> await bot.stop()
    """

    def __init__(
        self,
        host: HostAPI,
        config: Optional[RuntimeConfig] = None,
        symbols: Optional[List[str]] = None,
    ):
        super().__init__(RuntimeContext(host, config), "Script")
        self.host = host
        self.symbols = list(symbols) if symbols else self._symbols_from_args()
        if not self.symbols:
            self.context.close()
            raise StrategyKitError("Script::__init__ symbols is not defined")

        self.connection_name = host.get_arg("connection_name", "")
        self.hedge_mode = bool(host.get_arg("hedge_mode", False))
        self.max_orders = self.context.config.max_orders_tester
        self.iterator = 0
        self.balance_total: Optional[float] = None
        self.balance_free: Optional[float] = None
        self.is_initialized = False
        self.is_finished = False
        self._is_tick_locked = False
        self._closed_order_ids: Set[str] = set()
        self._started_at = time.monotonic()

        self.logger.info(f"Script::__init__ {self.__class__.__name__} symbols={self.symbols}")

    def _symbols_from_args(self) -> List[str]:
        if self.context.host.is_tester():
            symbol = self.context.host.get_arg("symbol")
            return [symbol] if symbol else []

        line = self.context.host.get_arg("symbols", "") or ""
        return [symbol.strip() for symbol in line.split(",") if "/" in symbol]

    # Hooks

    async def on_init(self) -> None:
        pass

    async def on_tick(self, data: Any = None) -> None:
        pass

    async def on_order_change(self, order: Order) -> None:
        pass

    async def on_timer(self) -> None:
        pass

    async def on_args_update(self, args: Dict[str, Any]) -> None:
        pass

    async def on_report_action(self, action: str, payload: Any) -> None:
        pass

    async def on_stop(self) -> None:
        pass

    # Helpers

    async def create_exchange(self, symbol: str, **options: Any) -> Exchange:
        """Create, own and initialise an Exchange for one of the symbols."""
        options.setdefault("connection_name", self.connection_name)
        options.setdefault("hedge_mode", self.hedge_mode)
        exchange = self.own(Exchange(self.context, symbol, **options))
        await exchange.init()
        return exchange

    # Lifecycle

    async def start(self) -> None:
        """
        Fetch the balance, run on_init() and emit ON_INIT.

        Raises:
            StrategyKitError: If the balance cannot be fetched
        """
        if self.is_initialized:
            self.logger.debug("Script::start already started")
            return

        try:
            balance = await self.host.get_balance()
        except Exception as e:
            raise StrategyKitError(f"Script::start get_balance failed: {e}") from e

        self.balance_total = balance.total
        self.balance_free = balance.free
        self.logger.info(
            f"Script::start balance total={self.balance_total} free={self.balance_free} "
            f"tester={self.host.is_tester()}"
        )

        self.is_initialized = True
        try:
            await self.on_init()
            await self.context.events.emit(EventType.ON_INIT)
        except Exception as e:
            await self._run_on_error(e)

    def _check_stopped(self) -> None:
        if self.context.is_stopped:
            raise ForcedStopError(
                f"Script stopped: {self.context.stop_reason}",
                {"reason": self.context.stop_reason},
            )

    async def _run_on_error(self, error: Exception) -> None:
        if self.context.is_stopped or isinstance(error, ForcedStopError):
            raise error
        self.logger.error(f"{self.__class__.__name__}::run {error!r}")

    async def run_on_tick(self, data: Any = None) -> bool:
        """
        Process one host tick.

        Returns:
            bool: False if a previous tick is still being processed

        Raises:
            ForcedStopError: If the runtime has been force-stopped
        """
        if self._is_tick_locked:
            return False

        self._check_stopped()
        self._is_tick_locked = True
        events = self.context.events
        try:
            await events.emit(EventType.ON_BEFORE_TICK, data)
            await self.on_tick(data)
            await events.emit(EventType.ON_TICK, data)
            await events.emit_on_tick()
        except Exception as e:
            await self._run_on_error(e)
        finally:
            self._is_tick_locked = False
            self.iterator += 1
        return True

    async def run_on_order_change(self, orders: Iterable[Order]) -> None:
        """
        Dispatch order updates.

        In live mode a 'closed' update of an already closed order is dropped.
        In tester mode every update consumes max_orders; reaching zero
        force-stops the script.
        """
        events = self.context.events
        try:
            for order in orders:
                if not self.host.is_tester():
                    if order.id is not None and order.id in self._closed_order_ids:
                        self.logger.warning(
                            f"Script::run_on_order_change Closed order came twice: {order.id}"
                        )
                        continue
                    if order.status == "closed" and order.id is not None:
                        self._closed_order_ids.add(order.id)
                else:
                    self.max_orders -= 1
                    if self.max_orders <= 0:
                        self.force_stop("Max orders reached")

                await self.on_order_change(order)
                await events.emit_on_order_change(order)
                await events.emit(EventType.ON_ORDER_CHANGE, order)
        except Exception as e:
            await self._run_on_error(e)

    async def run_on_timer(self) -> None:
        self._check_stopped()
        try:
            self.iterator += 1
            await self.on_timer()
            await self.context.events.emit(EventType.ON_TIMER)
        except Exception as e:
            await self._run_on_error(e)

    async def run_args_update(self, args: Dict[str, Any]) -> None:
        try:
            await self.on_args_update(args)
            await self.context.events.emit(EventType.ON_ARGS_UPDATE, args)
        except Exception as e:
            await self._run_on_error(e)

    async def run_on_report_action(self, action: str, payload: Any = None) -> None:
        try:
            await self.on_report_action(action, payload)
            await self.context.events.emit(
                EventType.ON_REPORT_ACTION, {"action": action, "payload": payload}
            )
        except Exception as e:
            await self._run_on_error(e)

    def force_stop(self, reason: str) -> None:
        """
        Stop the runtime and abort the current call.

        Raises:
            ForcedStopError: Always
        """
        self.context.request_stop(reason)
        self.logger.error(f"Script::force_stop {reason}")
        raise ForcedStopError(reason)

    async def stop(self) -> None:
        """Emit the stop events around on_stop(), then tear the runtime down."""
        if self.is_finished:
            return

        self.logger.info("Script::stop ===========================Stop===========================")
        events = self.context.events
        try:
            await events.emit(EventType.ON_BEFORE_STOP)
            await events.emit(EventType.ON_STOP)
            await self.on_stop()
            await events.emit(EventType.ON_AFTER_STOP)
        except Exception as e:
            self.logger.error(f"Script::stop {e!r}")
        finally:
            self.is_finished = True
            spent = time.monotonic() - self._started_at
            self.logger.info(f"Script::stop spent {int(spent // 60)}:{int(spent % 60):02d}")
            self.destroy()
            self.context.close()
