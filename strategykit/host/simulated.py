"""
In-memory host for tests, examples and offline runs.

SimulatedHost implements the HostAPI contract without any exchange:
prices and the clock are set by the caller, market orders fill immediately
at the last price, limit orders fill once the price crosses them and
orders carrying a trigger price wait for the price to reach it. Order
updates are queued so the driver can hand them to Script.run_on_order_change.
"""

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..core.models import Balance, Candle, Order, Position
from .base import HostAPI


class SimulatedHost(HostAPI):
    """
    Deterministic host with one-way (net) positions.

    Attributes:
        stopped (bool): True once force_stop() was called
        stop_reason (str): Reason passed to force_stop()
        reports (List[Dict]): Reports received through update_report()

    Examples:
        >>> host = SimulatedHost(start_time=1_700_000_000_000)
        >>> host.set_price("BTC/USDT", 100.0)
        []
        >>> order = await host.create_order("BTC/USDT", "market", "buy", 1.0, 0.0)
        >>> order.status
        'closed'
    """

    def __init__(
        self,
        start_time: int = 0,
        tester: bool = True,
        args: Optional[Dict[str, Any]] = None,
        balance: float = 10000.0,
    ):
        self._time = start_time
        self._tester = tester
        self._args = dict(args or {})
        self._quotes: Dict[str, Dict[str, float]] = {}
        self._history: Dict[str, List[Candle]] = {}
        self._orders: Dict[str, Order] = {}
        self._order_changes: List[Order] = []
        self._net: Dict[str, Position] = {}
        # order id -> (trigger price, fires when price rises to it)
        self._stops: Dict[str, Tuple[float, bool]] = {}
        self._next_order_id = 1
        self.balance = Balance(total=balance, free=balance)
        self.leverage: Dict[str, float] = {}
        self.symbol_limits: Dict[str, Dict[str, Any]] = {}
        self.stopped = False
        self.stop_reason: Optional[str] = None
        self.reports: List[Dict[str, Any]] = []

    # Simulation controls

    def set_time(self, timestamp: int) -> None:
        self._time = timestamp

    def advance(self, milliseconds: int) -> int:
        self._time += milliseconds
        return self._time

    def set_price(
        self,
        symbol: str,
        price: float,
        timestamp: Optional[int] = None,
        volume: float = 0.0,
        spread: float = 0.0,
    ) -> List[Order]:
        """
        Record a trade price and fill crossing limit orders.

        Returns:
            List[Order]: Orders filled by this price update
        """
        if timestamp is not None:
            self._time = timestamp

        quote = self._quotes.get(symbol)
        if quote is None:
            quote = self._quotes[symbol] = {"open": price, "high": price, "low": price}

        quote.update(
            close=price,
            high=max(quote["high"], price),
            low=min(quote["low"], price),
            bid=price - spread / 2,
            ask=price + spread / 2,
            volume=volume,
        )

        filled = []
        for order in list(self._orders.values()):
            if order.symbol != symbol or order.status != "open":
                continue

            if order.id in self._stops:
                trigger_price, rising = self._stops[order.id]
                reached = price >= trigger_price if rising else price <= trigger_price
                if not reached:
                    continue
                del self._stops[order.id]
                if order.type == "market":
                    self._fill(order, price)
                    filled.append(order)
                continue

            if order.type != "limit":
                continue
            crossed = price <= order.price if order.side == "buy" else price >= order.price
            if crossed:
                self._fill(order, order.price)
                filled.append(order)
        return filled

    def add_history(self, symbol: str, candles: List[Candle]) -> None:
        self._history.setdefault(symbol, []).extend(candles)

    def pop_order_changes(self) -> List[Order]:
        changes, self._order_changes = self._order_changes, []
        return changes

    # Market data

    def current_time(self, symbol: Optional[str] = None) -> int:
        return self._time

    def _quote(self, symbol: str, field: str) -> float:
        quote = self._quotes.get(symbol)
        if quote is None:
            raise KeyError(f"No price for symbol {symbol}")
        return quote[field]

    def close(self, symbol: str) -> float:
        return self._quote(symbol, "close")

    def open(self, symbol: str) -> float:
        return self._quote(symbol, "open")

    def high(self, symbol: str) -> float:
        return self._quote(symbol, "high")

    def low(self, symbol: str) -> float:
        return self._quote(symbol, "low")

    def bid(self, symbol: str) -> float:
        return self._quote(symbol, "bid")

    def ask(self, symbol: str) -> float:
        return self._quote(symbol, "ask")

    def volume(self, symbol: str) -> float:
        return self._quote(symbol, "volume")

    async def get_history(
        self, symbol: str, timeframe: str, start_time: int, limit: int
    ) -> List[Candle]:
        bars = [c for c in self._history.get(symbol, []) if c.timestamp >= start_time]
        return [c.model_copy() for c in bars[:limit]]

    async def symbol_info(self, symbol: str) -> Dict[str, Any]:
        return self.symbol_limits.get(
            symbol,
            {"limits": {"amount": {"min": 0.00001}, "cost": {"min": 5}}, "contractSize": 1},
        )

    # Runtime

    def is_tester(self) -> bool:
        return self._tester

    def get_arg(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def force_stop(self, reason: str) -> None:
        self.stopped = True
        self.stop_reason = reason

    # Orders and account

    async def create_order(
        self,
        symbol: str,
        type: str,
        side: str,
        amount: float,
        price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        params = dict(params or {})
        order = Order(
            id=str(self._next_order_id),
            client_order_id=params.get("client_order_id", ""),
            symbol=symbol,
            type=type,
            side=side,
            amount=amount,
            price=price,
            reduce_only=bool(params.get("reduce_only", False)),
            timestamp=self._time,
            params=params,
        )
        self._next_order_id += 1
        self._orders[order.id] = order

        trigger_price = (
            params.get("trigger_price")
            or params.get("stop_loss_price")
            or params.get("take_profit_price")
        )
        if trigger_price:
            self._stops[order.id] = (trigger_price, self.close(symbol) < trigger_price)
            self._order_changes.append(order.model_copy())
        elif type == "market":
            self._fill(order, self.close(symbol))
        else:
            self._order_changes.append(order.model_copy())

        logger.debug(f"SimulatedHost::create_order {side} {amount} {symbol} -> {order.status}")
        return order.model_copy()

    async def modify_order(
        self, order_id: str, symbol: str, type: str, side: str, amount: float, price: float
    ) -> Order:
        order = self._orders.get(order_id)
        if order is None or order.status != "open":
            raise ValueError(f"Order {order_id} is not open")
        order.type, order.side, order.amount, order.price = type, side, amount, price
        order.timestamp = self._time
        self._order_changes.append(order.model_copy())
        return order.model_copy()

    async def cancel_order(self, order_id: str, symbol: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise ValueError(f"Order {order_id} not found")
        self._stops.pop(order_id, None)
        if order.status == "open":
            order.status = "canceled"
            order.timestamp = self._time
            self._order_changes.append(order.model_copy())
        return order.model_copy()

    async def get_order(self, order_id: str, symbol: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy() if order else None

    async def get_open_orders(self, symbol: str) -> List[Order]:
        return [
            o.model_copy() for o in self._orders.values()
            if o.symbol == symbol and o.status == "open"
        ]

    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        return [
            p.model_copy() for s, p in self._net.items()
            if p.contracts > 0 and (symbol is None or s == symbol)
        ]

    async def get_balance(self) -> Balance:
        return self.balance.model_copy()

    async def set_leverage(self, leverage: float, symbol: str) -> None:
        self.leverage[symbol] = leverage

    async def update_report(self, report: Dict[str, Any]) -> None:
        self.reports.append(report)

    def _fill(self, order: Order, price: float) -> None:
        order.status = "closed"
        order.filled = order.amount
        order.price = price
        order.timestamp = self._time
        self._apply_fill(order.symbol, order.side, order.amount, price, order.reduce_only)
        self._order_changes.append(order.model_copy())

    def _apply_fill(
        self, symbol: str, side: str, amount: float, price: float, reduce_only: bool
    ) -> None:
        position = self._net.get(symbol)
        fill_side = "long" if side == "buy" else "short"

        if position is None or position.contracts == 0:
            if reduce_only:
                return
            self._net[symbol] = Position(
                symbol=symbol, side=fill_side, contracts=amount, entry_price=price
            )
            return

        if position.side == fill_side:
            if reduce_only:
                return
            total = position.contracts + amount
            position.entry_price = (
                position.entry_price * position.contracts + price * amount
            ) / total
            position.contracts = total
            return

        closed = min(amount, position.contracts)
        pnl = position.profit(price) * closed / position.contracts
        self.balance.total += pnl
        self.balance.free += pnl
        position.contracts -= closed

        remainder = amount - closed
        if remainder > 0 and not reduce_only:
            self._net[symbol] = Position(
                symbol=symbol, side=fill_side, contracts=remainder, entry_price=price
            )
