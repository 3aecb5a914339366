"""
Exchange facade of one symbol.

Wraps the host order primitives with client order ids, argument
validation and stop-loss / take-profit chains:

- Orders placed with 'sl' / 'tp' params queue their stop orders; the stop
  orders are created once the owner order reports 'closed'.
- With trigger_type 'script' stop and trigger orders are emulated by price
  trigger tasks grouped by the owner's client order id, so the first stop to
  fire cancels its sibling.
- With trigger_type 'exchange' stop orders are sent to the host, and a
  filled stop cancels its sibling on the exchange.
"""

import math
from numbers import Real
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..core.errors import ExchangeError
from ..core.managed import ManagedObject
from ..core.models import Order, Position
from ..core.registry import unique_suffix
from ..triggers.service import TriggerService
from ..utils.time import time_to_string
from .models import ClientOrderId, StopOrderData, StopOrderQueueItem

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


ORDER_PARAMS = {
    "time_in_force",
    "leverage",
    "client_order_id",
    "stop_price",
    "trigger_price",
    "reduce_only",
    "take_profit_price",
    "stop_loss_price",
}

TRIGGER_TASK_NAMES = {
    "stop_loss_price": "execute_stop_loss",
    "take_profit_price": "execute_take_profit",
    "trigger_price": "execute_trigger_order",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


class Exchange(ManagedObject):
    """
    Order facade bound to one symbol.

    Attributes:
        symbol (str): Traded symbol
        prefix (str): Tag embedded in client order ids; order updates with
            another prefix are ignored
        leverage (int): Leverage set on init()
        hedge_mode (bool): Send position_side with every order
        trigger_type (str): 'script' or 'exchange'
        triggers (TriggerService): Price tasks emulating stop/trigger orders

    Examples:
        >>> exchange = Exchange(context, "BTC/USDT", connection_name="binance")
        >>> await exchange.init()
        >>> order = await exchange.buy_market(0.01, tp=110.0, sl=95.0)
        >>> order.client_order_id
        '17000000-ab12-M0'
    """

    def __init__(
        self,
        context: "RuntimeContext",
        symbol: str,
        connection_name: str = "",
        prefix: Optional[str] = None,
        leverage: int = 20,
        hedge_mode: bool = False,
        trigger_type: str = "script",
    ):
        if not symbol:
            raise ExchangeError('Exchange::__init__ Argument "symbol" is not defined')
        if trigger_type not in ("script", "exchange"):
            raise ExchangeError(
                f"Exchange::__init__ Wrong trigger type {trigger_type}", {"symbol": symbol}
            )

        super().__init__(context, symbol)
        self.symbol = symbol
        self.connection_name = connection_name
        self.leverage = leverage
        self.hedge_mode = hedge_mode
        self.trigger_type = trigger_type
        self.prefix = ""
        self.set_prefix(prefix)

        self.is_init = False
        self.symbol_info: Dict[str, Any] = {}
        self.max_leverage: Optional[float] = None
        self.contract_size = 1.0
        self.min_contract_quoted = 0.0
        self.min_contract_step = 0.0

        self._next_order_id = 0
        self._orders_by_client_id: Dict[str, Order] = {}
        self._user_params: Dict[str, Dict[str, Any]] = {}
        self._stop_orders: Dict[str, StopOrderData] = {}
        self._stop_orders_queue: Dict[str, StopOrderQueueItem] = {}

        context.events.subscribe_on_order_change(self.before_on_order_change, self, symbol)

        self.triggers = self.own(TriggerService(context, id_prefix=symbol, symbol=symbol))
        for task_name in TRIGGER_TASK_NAMES.values():
            self.triggers.register_handler(task_name, self.create_trigger_order_by_task, self)

    def set_prefix(self, prefix: Optional[str] = None) -> None:
        """
        Set the client order id prefix.

        Updates of orders created under an older prefix are not processed
        after a change.
        """
        prefix = prefix or unique_suffix(4)
        if "-" in prefix or "." in prefix:
            raise ExchangeError(
                f"Exchange::set_prefix Prefix must not contain '-' or '.': {prefix}"
            )
        self.prefix = prefix
        self.logger.info(f"Exchange::set_prefix Prefix set to {prefix}")

    async def init(self) -> None:
        """
        Load symbol limits and set the leverage.

        Raises:
            ExchangeError: If the symbol has no minimum amount or the leverage
                exceeds the allowed maximum
        """
        host = self.context.host
        self.symbol_info = await host.symbol_info(self.symbol) or {}

        limits = self.symbol_info.get("limits", {})
        min_amount = limits.get("amount", {}).get("min")
        if not min_amount:
            raise ExchangeError(
                f"Exchange::init min amount is not defined for symbol {self.symbol}",
                {"symbol_info": self.symbol_info},
            )

        min_cost = limits.get("cost", {}).get("min")
        self.min_contract_quoted = min_cost if min_cost else min_amount * self.close()
        self.contract_size = self.symbol_info.get("contractSize") or 1
        self.min_contract_step = min_amount
        self.max_leverage = self.symbol_info.get("maxLeverage") or host.get_arg(
            "default_leverage", 100
        )

        if self.leverage > self.max_leverage:
            raise ExchangeError(
                f"Exchange::init leverage ({self.leverage}) is high for symbol {self.symbol}",
                {"leverage": self.leverage, "max_leverage": self.max_leverage},
            )

        try:
            await host.set_leverage(self.leverage, self.symbol)
        except Exception as e:
            raise ExchangeError(
                f"Exchange::init set_leverage failed: {e}",
                {"leverage": self.leverage, "symbol": self.symbol},
            ) from e

        self.is_init = True
        self.logger.info(
            f"Exchange::init {self.symbol} trigger_type={self.trigger_type} prefix={self.prefix} "
            f"leverage={self.leverage} contract_size={self.contract_size} "
            f"min_contract_quoted={self.min_contract_quoted} min_contract_step={self.min_contract_step}"
        )

    # Order updates

    async def before_on_order_change(self, event: Any) -> Dict[str, Any]:
        """Maintain SL/TP chains for own orders, then call on_order_change()."""
        order: Order = event.data
        parsed = self.parse_client_order_id(order.client_order_id)

        if parsed.prefix != self.prefix:
            return {"status": "not processed", "order_prefix": parsed.prefix}

        try:
            self._orders_by_client_id[order.client_order_id] = order
            stop_orders = self._stop_orders.get(parsed.owner_client_order_id or "")

            if order.status == "closed" and stop_orders and order.id is not None:
                if order.id == stop_orders.sl_order_id and stop_orders.tp_order_id:
                    await self.cancel_order(stop_orders.tp_order_id)
                if order.id == stop_orders.tp_order_id and stop_orders.sl_order_id:
                    await self.cancel_order(stop_orders.sl_order_id)

            if order.status == "canceled" and stop_orders and self.trigger_type == "exchange":
                for order_id in (stop_orders.sl_order_id, stop_orders.tp_order_id):
                    if order_id and order_id != order.id:
                        await self.cancel_order(order_id)

            queued = self._stop_orders_queue.get(order.client_order_id)
            if order.status == "closed" and queued:
                del self._stop_orders_queue[order.client_order_id]
                await self.create_sl_tp_orders(order.client_order_id, queued.sl, queued.tp)
        except Exception as e:
            self.logger.error(
                f"Exchange::before_on_order_change {e!r} | order={order.client_order_id} "
                f"status={order.status}"
            )

        return await self.on_order_change(order)

    async def on_order_change(self, order: Order) -> Dict[str, Any]:
        """Hook for subclasses."""
        return {"order": order}

    # Orders

    async def create_order(
        self,
        type: str,
        side: str,
        amount: float,
        price: float = 0.0,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """
        Create an order.

        Args:
            type: 'market' or 'limit'
            side: 'buy' or 'sell'
            amount: Order size
            price: Limit price (ignored by the host for market orders)
            params: Order params; 'sl' / 'tp' queue stop orders,
                'stop_loss_price' / 'take_profit_price' / 'trigger_price' make
                a trigger order. Keys the host does not understand are kept as
                user params of the order.

        Returns:
            Order: The host's order, or an 'untriggered' placeholder without
            an exchange id for script-emulated trigger orders

        Raises:
            ExchangeError: For invalid arguments or host failures
        """
        params = dict(params or {})
        args = {"type": type, "side": side, "amount": amount, "price": price}

        if not self.is_init:
            raise ExchangeError("Exchange::create_order exchange not initialized", args)
        if not self.context.config.is_trade_allowed:
            raise ExchangeError("Exchange::create_order trading is not allowed", args)
        if not _is_number(amount) or not _is_number(price):
            raise ExchangeError("Exchange::create_order wrong amount or price", args)
        if amount <= 0:
            raise ExchangeError("Exchange::create_order amount must be > 0", args)
        if side not in ("buy", "sell"):
            raise ExchangeError("Exchange::create_order side must be buy or sell", args)
        if type not in ("market", "limit"):
            raise ExchangeError("Exchange::create_order type must be market or limit", args)

        reduce_only = bool(params.get("reduce_only"))
        if self.hedge_mode:
            opens_long = side == "buy"
            params["position_side"] = "long" if opens_long != reduce_only else "short"

        params.setdefault("leverage", self.leverage)

        owner_client_order_id = params.pop("owner_client_order_id", None)
        trigger_order_type = params.pop("trigger_order_type", None)
        client_order_id = self.generate_client_order_id(
            type, reduce_only, owner_client_order_id, trigger_order_type
        )
        params["client_order_id"] = client_order_id

        sl, tp = params.pop("sl", None), params.pop("tp", None)
        if sl or tp:
            self._stop_orders_queue[client_order_id] = StopOrderQueueItem(
                owner_client_order_id=client_order_id, sl=sl or None, tp=tp or None, prefix=self.prefix
            )
            self.logger.info(
                f"Exchange::create_order Stop orders queued for {client_order_id}: sl={sl} tp={tp}"
            )

        trigger_key = next((key for key in TRIGGER_TASK_NAMES if params.get(key)), None)
        if trigger_key and self.trigger_type == "script":
            return self._add_trigger_task(
                trigger_key, type, side, amount, price, params,
                client_order_id, owner_client_order_id, trigger_order_type,
            )

        order_params, user_params = self._split_params(params)

        try:
            order = await self.context.host.create_order(
                self.symbol, type, side, amount, price, order_params
            )
        except Exception as e:
            raise ExchangeError(
                f"Exchange::create_order {e}", {**args, "order_params": order_params}
            ) from e

        self._orders_by_client_id[client_order_id] = order
        self._user_params[client_order_id] = user_params

        if not order.id:
            self.logger.error(
                f"Exchange::create_order Order not created | args={args} "
                f"order_params={order_params} error={order.error}"
            )
            return order

        self.logger.info(
            f"Exchange::create_order [{self.symbol}] Order created {'R ' if reduce_only else ''}"
            f"{type} {side} {amount} @ {order.price} ({client_order_id})"
        )
        return order

    def _add_trigger_task(
        self,
        trigger_key: str,
        type: str,
        side: str,
        amount: float,
        price: float,
        params: Dict[str, Any],
        client_order_id: str,
        owner_client_order_id: Optional[str],
        trigger_order_type: Optional[str],
    ) -> Order:
        task_name = TRIGGER_TASK_NAMES[trigger_key]
        task_args = {
            "type": type,
            "side": side,
            "amount": amount,
            "price": price,
            "params": {
                "reduce_only": params.get("reduce_only", False),
                "owner_client_order_id": owner_client_order_id,
                "trigger_order_type": trigger_order_type,
            },
        }

        task_id = self.triggers.add_task_by_price(
            task_name,
            params[trigger_key],
            symbol=self.symbol,
            args=task_args,
            group=owner_client_order_id,
        )
        if task_id is None:
            raise ExchangeError(
                f"Exchange::create_order trigger task {task_name} was not added",
                {"trigger_price": params[trigger_key]},
            )

        self.logger.info(
            f"Exchange::create_order Trigger price task {task_name} added: {task_id} "
            f"@ {params[trigger_key]} (group {owner_client_order_id})"
        )
        return Order(
            id=None,
            client_order_id=client_order_id,
            symbol=self.symbol,
            type=type,
            side=side,
            amount=amount,
            price=price,
            status="untriggered",
            reduce_only=bool(params.get("reduce_only")),
            timestamp=self.context.host.current_time(),
            params={"task_id": task_id},
        )

    async def create_trigger_order_by_task(self, task_args: Dict[str, Any]) -> Order:
        """Named handler of the emulated stop and trigger orders."""
        self.logger.info(f"Exchange::create_trigger_order_by_task {task_args}")
        return await self.create_order(
            task_args["type"],
            task_args["side"],
            task_args["amount"],
            task_args["price"],
            dict(task_args.get("params") or {}),
        )

    async def create_sl_tp_orders(
        self, owner_client_order_id: str, sl: Optional[float] = None, tp: Optional[float] = None
    ) -> Optional[Tuple[Optional[Order], Optional[Order]]]:
        if not sl and not tp:
            return None

        owner = self._orders_by_client_id.get(owner_client_order_id)
        if owner is None:
            self.logger.warning(
                f"Exchange::create_sl_tp_orders Order not found {owner_client_order_id}"
            )
            return None

        sl_order = tp_order = None
        if sl:
            sl_order = await self.create_stop_loss_order(
                owner.side, owner.amount, sl,
                {"owner_client_order_id": owner_client_order_id, "trigger_order_type": "SL"},
            )
        if tp:
            tp_order = await self.create_take_profit_order(
                owner.side, owner.amount, tp,
                {"owner_client_order_id": owner_client_order_id, "trigger_order_type": "TP"},
            )

        self._stop_orders[owner_client_order_id] = StopOrderData(
            owner_client_order_id=owner_client_order_id,
            sl_order_id=sl_order.id if sl_order else None,
            sl_client_order_id=sl_order.client_order_id if sl_order else None,
            tp_order_id=tp_order.id if tp_order else None,
            tp_client_order_id=tp_order.client_order_id if tp_order else None,
        )
        self.logger.info(
            f"Exchange::create_sl_tp_orders Stop orders created for {owner_client_order_id}: "
            f"sl={sl} tp={tp}"
        )
        return sl_order, tp_order

    async def buy_market(
        self, amount: float, tp: Optional[float] = None, sl: Optional[float] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        return await self.create_order("market", "buy", amount, 0.0, {**(params or {}), "tp": tp, "sl": sl})

    async def sell_market(
        self, amount: float, tp: Optional[float] = None, sl: Optional[float] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        return await self.create_order("market", "sell", amount, 0.0, {**(params or {}), "tp": tp, "sl": sl})

    async def buy_limit(
        self, amount: float, limit_price: float, tp: Optional[float] = None,
        sl: Optional[float] = None, params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        return await self.create_order(
            "limit", "buy", amount, limit_price, {**(params or {}), "tp": tp, "sl": sl}
        )

    async def sell_limit(
        self, amount: float, limit_price: float, tp: Optional[float] = None,
        sl: Optional[float] = None, params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        return await self.create_order(
            "limit", "sell", amount, limit_price, {**(params or {}), "tp": tp, "sl": sl}
        )

    async def create_stop_loss_order(
        self, side_to_close: str, amount: float, stop_loss_price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """
        Reduce-only market order closing `side_to_close` at the stop price.

        Passing 'buy' closes a long, so the stop order itself sells.
        """
        side = "sell" if side_to_close == "buy" else "buy"
        return await self.create_order(
            "market", side, amount, stop_loss_price,
            {**(params or {}), "stop_loss_price": stop_loss_price, "reduce_only": True},
        )

    async def create_take_profit_order(
        self, side_to_close: str, amount: float, take_profit_price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        side = "sell" if side_to_close == "buy" else "buy"
        return await self.create_order(
            "market", side, amount, take_profit_price,
            {**(params or {}), "take_profit_price": take_profit_price, "reduce_only": True},
        )

    async def create_triggered_order(
        self, type: str, side: str, amount: float, price: float, trigger_price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """Order sent to the exchange once the price reaches trigger_price."""
        return await self.create_order(
            type, side, amount, price, {**(params or {}), "trigger_price": trigger_price}
        )

    async def create_reduce_order(
        self, type: str, side_to_close: str, amount: float, price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """Reduce-only order; side_to_close accepts buy/sell and long/short."""
        side = "sell" if side_to_close in ("buy", "long") else "buy"
        return await self.create_order(type, side, amount, price, {**(params or {}), "reduce_only": True})

    async def modify_order(
        self, order_id: str, type: str, side: str, amount: float, price: float
    ) -> Order:
        args = {"order_id": order_id, "type": type, "side": side, "amount": amount, "price": price}
        try:
            order = await self.context.host.modify_order(
                order_id, self.symbol, type, side, amount, price
            )
        except Exception as e:
            raise ExchangeError(f"Exchange::modify_order {e}", args) from e

        self.logger.info(f"Exchange::modify_order Order modified {args}")
        return order

    async def cancel_order(self, order_id: str) -> Optional[Order]:
        """
        Cancel an order by exchange id.

        Returns:
            Optional[Order]: The cancelled order; None (with an error log) if
            order_id is not a string or the tester did not cancel it
        """
        if not isinstance(order_id, str):
            self.logger.error(
                f"Exchange::cancel_order order_id must be str, got {type(order_id).__name__}"
            )
            return None

        host = self.context.host
        try:
            order = await host.cancel_order(order_id, self.symbol)
            if host.is_tester():
                current = await host.get_order(order_id, self.symbol)
                if current is None or current.status not in ("canceled", "closed"):
                    self.logger.error(f"Exchange::cancel_order Order {order_id} not canceled")
                    return None
        except Exception as e:
            raise ExchangeError(
                f"Exchange::cancel_order {e}", {"order_id": order_id, "symbol": self.symbol}
            ) from e

        self.logger.info(f"Exchange::cancel_order Order {order_id} canceled")
        return order

    # Client order ids

    def generate_client_order_id(
        self,
        type: str,
        is_reduce: bool = False,
        owner_client_order_id: Optional[str] = None,
        trigger_order_type: Optional[str] = None,
    ) -> str:
        kind = "M" if type == "market" else "L"
        if is_reduce and not owner_client_order_id:
            kind = "R"

        stamp = int(self.context.host.current_time() / 100)
        client_order_id = f"{stamp}-{self.prefix}-{kind}{self._next_order_id}"
        self._next_order_id += 1
        if self.connection_name == "gateio":
            client_order_id = f"t-{client_order_id}"

        if owner_client_order_id:
            if trigger_order_type not in ("SL", "TP"):
                self.logger.error(
                    "Exchange::generate_client_order_id trigger_order_type (SL or TP) is required "
                    f"for linked stop orders | owner={owner_client_order_id}"
                )
            else:
                # The owner id already carries the connection prefix
                client_order_id = f"{owner_client_order_id}.{trigger_order_type}"

        return client_order_id

    def parse_client_order_id(self, client_order_id: Optional[str]) -> ClientOrderId:
        if not client_order_id:
            return ClientOrderId()

        parts = client_order_id.split("-")
        if self.connection_name == "gateio":
            parts = parts[1:]

        short_client_id = parts[2] if len(parts) > 2 else None
        owner_client_order_id = trigger_order_type = None

        if short_client_id:
            short_owner_id, _, suffix = short_client_id.partition(".")
            trigger_order_type = suffix or None
            if trigger_order_type:
                owner_client_order_id = f"{parts[0]}-{parts[1]}-{short_owner_id}"
                if self.connection_name == "gateio":
                    owner_client_order_id = f"t-{owner_client_order_id}"

        return ClientOrderId(
            client_order_id=client_order_id,
            unique_prefix=parts[0] if parts else None,
            prefix=parts[1] if len(parts) > 1 else None,
            short_client_id=short_client_id,
            owner_client_order_id=owner_client_order_id,
            trigger_order_type=trigger_order_type,
        )

    def _split_params(self, params: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        allowed = set(ORDER_PARAMS)
        if self.hedge_mode:
            allowed.add("position_side")

        order_params = {k: v for k, v in params.items() if k in allowed and v is not None}
        user_params = {k: v for k, v in params.items() if k not in allowed}
        return order_params, user_params

    def get_user_order_params(self, client_order_id: str) -> Dict[str, Any]:
        return dict(self._user_params.get(client_order_id, {}))

    # Account

    async def get_positions(self) -> List[Position]:
        return await self.context.host.get_positions(self.symbol)

    async def get_position_by_side(self, side: str) -> Position:
        """Position of one side; an empty position when there is none."""
        if side not in ("long", "short"):
            raise ExchangeError(f"Exchange::get_position_by_side wrong position side: {side}")

        for position in await self.get_positions():
            if position.side == side:
                return position
        return Position(symbol=self.symbol, side=side)

    async def get_open_orders(self) -> List[Order]:
        try:
            return await self.context.host.get_open_orders(self.symbol)
        except Exception as e:
            raise ExchangeError(f"Exchange::get_open_orders {e}", {"symbol": self.symbol}) from e

    def get_extended_orders(self) -> List[Dict[str, Any]]:
        """Tracked orders with the close price and profit of their stop order."""
        rows = []
        for order in self._orders_by_client_id.values():
            parsed = self.parse_client_order_id(order.client_order_id)
            stop_data = self._stop_orders.get(order.client_order_id)
            stop_order = None

            if stop_data:
                for stop_id in (stop_data.tp_client_order_id, stop_data.sl_client_order_id):
                    candidate = self._orders_by_client_id.get(stop_id or "")
                    if candidate is not None and candidate.status == "closed":
                        stop_order = candidate

            profit = 0.0
            if stop_order is not None:
                direction = 1 if order.side == "buy" else -1
                profit = (stop_order.price - order.price) * order.amount * direction

            rows.append({
                "id": order.id,
                "client_order_id": order.client_order_id,
                "short_client_id": parsed.short_client_id,
                "side": order.side,
                "open_price": order.price,
                "close_price": stop_order.price if stop_order else 0.0,
                "amount": order.amount,
                "status": order.status,
                "profit": profit,
                "reduce_only": order.reduce_only,
                "cost": abs(order.price * order.amount),
                "date_open": time_to_string(order.timestamp),
                "date_close": time_to_string(stop_order.timestamp) if stop_order else "",
                "user_params": self.get_user_order_params(order.client_order_id),
            })
        return rows

    # Market data

    def get_contracts_amount(self, usd_amount: float, execution_price: Optional[float] = None) -> float:
        price = execution_price or self.close()
        return usd_amount / price / self.contract_size

    def get_usd_amount(self, contracts: float, execution_price: Optional[float] = None) -> float:
        price = execution_price or self.close()
        return contracts * price * self.contract_size

    @property
    def min_contract_base(self) -> float:
        return self.get_contracts_amount(self.min_contract_quoted)

    def close(self) -> float:
        return self.context.host.close(self.symbol)

    def ask(self) -> float:
        return self.context.host.ask(self.symbol)

    def bid(self) -> float:
        return self.context.host.bid(self.symbol)

    def _on_destroy(self) -> None:
        self.triggers.cancel_all()
