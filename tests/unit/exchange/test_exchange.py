"""
Unit tests for the Exchange facade.

Tests cover:
- Initialisation from symbol limits
- Order validation and parameter handling
- Client order id generation and parsing
- Stop-loss / take-profit chains in script and exchange trigger modes
- Position and amount helpers
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from strategykit.core.errors import ExchangeError
from strategykit.exchange import Exchange

SYMBOL = "BTC/USDT"
STAMP = 17_000_000_000


async def deliver_order_changes(context, host) -> None:
    """Hand queued host order updates to the event bus, like the script does."""
    for order in host.pop_order_changes():
        await context.events.emit_on_order_change(order)


@pytest_asyncio.fixture
async def exchange(context):
    exchange = Exchange(context, SYMBOL, prefix="bot1")
    await exchange.init()
    return exchange


class TestInit:
    """Test Exchange construction and init()."""

    def test_symbol_required(self, context):
        with pytest.raises(ExchangeError, match="symbol"):
            Exchange(context, "")

    def test_wrong_trigger_type(self, context):
        with pytest.raises(ExchangeError, match="Wrong trigger type"):
            Exchange(context, SYMBOL, trigger_type="broker")

    @pytest.mark.parametrize("prefix", ["bot-1", "bot.1"])
    def test_prefix_rejects_separators(self, context, prefix):
        with pytest.raises(ExchangeError, match="must not contain"):
            Exchange(context, SYMBOL, prefix=prefix)

    def test_random_prefix(self, context):
        exchange = Exchange(context, SYMBOL)

        assert len(exchange.prefix) == 4

    def test_stop_order_handlers_registered(self, context):
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        for name in ("execute_stop_loss", "execute_take_profit", "execute_trigger_order"):
            assert exchange.triggers.has_handler(name)

    @pytest.mark.asyncio
    async def test_init_reads_limits(self, exchange, host):
        """Test that limits, contract size and leverage come from symbol_info."""
        assert exchange.is_init
        assert exchange.min_contract_quoted == 5
        assert exchange.min_contract_step == 0.00001
        assert exchange.contract_size == 1
        assert exchange.max_leverage == 100
        assert host.leverage[SYMBOL] == 20

    @pytest.mark.asyncio
    async def test_init_without_min_amount(self, context, host):
        host.symbol_limits[SYMBOL] = {"limits": {"amount": {}}}
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        with pytest.raises(ExchangeError, match="min amount"):
            await exchange.init()

    @pytest.mark.asyncio
    async def test_init_leverage_above_max(self, context, host):
        host.symbol_limits[SYMBOL] = {
            "limits": {"amount": {"min": 0.001}},
            "contractSize": 10,
            "maxLeverage": 10,
        }
        exchange = Exchange(context, SYMBOL, prefix="bot1", leverage=25)

        with pytest.raises(ExchangeError, match="leverage"):
            await exchange.init()

    @pytest.mark.asyncio
    async def test_min_cost_falls_back_to_amount_times_price(self, context, host):
        host.symbol_limits[SYMBOL] = {"limits": {"amount": {"min": 0.5}}, "contractSize": 2}
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        await exchange.init()

        assert exchange.min_contract_quoted == 50.0
        assert exchange.contract_size == 2
        assert exchange.min_contract_base == pytest.approx(0.25)


class TestCreateOrder:
    """Test Exchange.create_order()."""

    @pytest.mark.asyncio
    async def test_not_initialized(self, context):
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        with pytest.raises(ExchangeError, match="not initialized"):
            await exchange.buy_market(1.0)

    @pytest.mark.asyncio
    async def test_trading_disabled(self, exchange, context):
        context.config.is_trade_allowed = False

        with pytest.raises(ExchangeError, match="not allowed"):
            await exchange.buy_market(1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_, side, amount, match",
        [
            ("market", "buy", 0, "amount must be > 0"),
            ("market", "buy", float("nan"), "wrong amount"),
            ("market", "buy", "1", "wrong amount"),
            ("market", "hold", 1.0, "side"),
            ("stop", "buy", 1.0, "type"),
        ],
    )
    async def test_invalid_arguments(self, exchange, type_, side, amount, match):
        with pytest.raises(ExchangeError, match=match):
            await exchange.create_order(type_, side, amount)

    @pytest.mark.asyncio
    async def test_market_order(self, exchange, host):
        """Test that a market order is sent with a generated client order id."""
        order = await exchange.buy_market(0.5, params={"note": "entry"})

        assert order.status == "closed"
        assert order.client_order_id == f"{STAMP}-bot1-M0"
        assert order.params == {"leverage": 20, "client_order_id": order.client_order_id}
        assert exchange.get_user_order_params(order.client_order_id) == {"note": "entry"}
        position = await exchange.get_position_by_side("long")
        assert position.contracts == 0.5

    @pytest.mark.asyncio
    async def test_limit_order_rests(self, exchange):
        order = await exchange.sell_limit(1.0, 105.0)

        assert order.status == "open"
        assert order.client_order_id.endswith("-bot1-L0")
        assert [o.id for o in await exchange.get_open_orders()] == [order.id]

    @pytest.mark.asyncio
    async def test_reduce_order_id_kind(self, exchange):
        await exchange.buy_market(1.0)

        order = await exchange.create_reduce_order("market", "long", 1.0, 0.0)

        assert order.side == "sell"
        assert order.reduce_only is True
        assert order.client_order_id.endswith("-bot1-R1")

    @pytest.mark.asyncio
    async def test_hedge_mode_position_side(self, context, host):
        exchange = Exchange(context, SYMBOL, prefix="bot1", hedge_mode=True)
        await exchange.init()

        entry = await exchange.sell_market(1.0)
        close = await exchange.create_reduce_order("market", "short", 1.0, 0.0)

        assert entry.params["position_side"] == "short"
        assert close.params["position_side"] == "short"

    @pytest.mark.asyncio
    async def test_host_failure_wrapped(self, exchange, host, monkeypatch):
        create_order = AsyncMock(side_effect=RuntimeError("insufficient margin"))
        monkeypatch.setattr(host, "create_order", create_order)

        with pytest.raises(ExchangeError, match="insufficient margin"):
            await exchange.buy_market(1.0)

        create_order.assert_awaited_once()
        assert create_order.await_args.args[:4] == (SYMBOL, "market", "buy", 1.0)

    @pytest.mark.asyncio
    async def test_modify_and_cancel(self, exchange, host):
        order = await exchange.buy_limit(1.0, 95.0)

        modified = await exchange.modify_order(order.id, "limit", "buy", 2.0, 96.0)
        cancelled = await exchange.cancel_order(order.id)

        assert modified.amount == 2.0
        assert cancelled.status == "canceled"
        assert await exchange.get_open_orders() == []

    @pytest.mark.asyncio
    async def test_cancel_order_requires_str(self, exchange, context):
        assert await exchange.cancel_order(42) is None

        errors = context.journal.get_logs("ERROR")
        assert any("must be str" in record["message"] for record in errors)

    @pytest.mark.asyncio
    async def test_cancel_unknown_order_raises(self, exchange):
        with pytest.raises(ExchangeError, match="not found"):
            await exchange.cancel_order("404")


class TestClientOrderId:
    """Test id generation and parsing."""

    def test_linked_stop_id(self, context):
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        client_id = exchange.generate_client_order_id("market", True, f"{STAMP}-bot1-M0", "SL")
        parsed = exchange.parse_client_order_id(client_id)

        assert client_id == f"{STAMP}-bot1-M0.SL"
        assert parsed.prefix == "bot1"
        assert parsed.short_client_id == "M0.SL"
        assert parsed.owner_client_order_id == f"{STAMP}-bot1-M0"
        assert parsed.trigger_order_type == "SL"

    def test_linked_stop_without_type_logs_error(self, context):
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        client_id = exchange.generate_client_order_id("market", True, "owner", None)

        assert client_id == f"{STAMP}-bot1-M0"
        errors = context.journal.get_logs("ERROR")
        assert any("trigger_order_type" in record["message"] for record in errors)

    def test_gateio_prefix(self, context):
        exchange = Exchange(context, SYMBOL, connection_name="gateio", prefix="bot1")

        client_id = exchange.generate_client_order_id("limit", False, f"t-{STAMP}-bot1-L0", "TP")
        plain_id = exchange.generate_client_order_id("limit")
        parsed = exchange.parse_client_order_id(client_id)

        assert client_id == f"t-{STAMP}-bot1-L0.TP"
        assert plain_id == f"t-{STAMP}-bot1-L1"
        assert exchange.parse_client_order_id(plain_id).prefix == "bot1"
        assert parsed.trigger_order_type == "TP"
        assert parsed.owner_client_order_id == f"t-{STAMP}-bot1-L0"

    def test_parse_empty(self, context):
        exchange = Exchange(context, SYMBOL, prefix="bot1")

        assert exchange.parse_client_order_id(None).prefix is None
        assert exchange.parse_client_order_id("manual").short_client_id is None


class TestScriptStopOrders:
    """Test SL/TP emulated by price tasks (trigger_type='script')."""

    @pytest.mark.asyncio
    async def test_stop_orders_created_after_fill(self, exchange, context, host):
        """Test that sl/tp become grouped price tasks once the entry order fills."""
        entry = await exchange.buy_market(1.0, tp=110.0, sl=90.0)

        await deliver_order_changes(context, host)

        tasks = {task.name: task for task in exchange.triggers.get_active_tasks()}
        assert set(tasks) == {"execute_stop_loss", "execute_take_profit"}
        stop_loss = tasks["execute_stop_loss"]
        assert stop_loss.trigger_price == 90.0
        assert stop_loss.group == entry.client_order_id
        assert stop_loss.args["side"] == "sell"
        assert stop_loss.args["params"] == {
            "reduce_only": True,
            "owner_client_order_id": entry.client_order_id,
            "trigger_order_type": "SL",
        }
        assert exchange.triggers.price_trigger().upper_min_price == 110.0

    @pytest.mark.asyncio
    async def test_take_profit_fires_and_cancels_stop_loss(self, exchange, context, host):
        await exchange.buy_market(1.0, tp=110.0, sl=90.0)
        await deliver_order_changes(context, host)

        host.set_price(SYMBOL, 111.0)
        await exchange.triggers.price_trigger().on_tick()
        await deliver_order_changes(context, host)

        assert exchange.triggers.get_active_tasks() == []
        assert await exchange.get_positions() == []
        assert host.balance.total == pytest.approx(10011.0)
        rows = {row["short_client_id"]: row for row in exchange.get_extended_orders()}
        assert rows["M0"]["close_price"] == 111.0
        assert rows["M0"]["profit"] == pytest.approx(11.0)

    @pytest.mark.asyncio
    async def test_trigger_order_is_untriggered_placeholder(self, exchange):
        order = await exchange.create_triggered_order("market", "buy", 1.0, 0.0, trigger_price=105.0)

        assert order.status == "untriggered"
        assert order.id is None
        task = exchange.triggers.get_task(order.params["task_id"])
        assert task.name == "execute_trigger_order"
        assert task.group is None

    @pytest.mark.asyncio
    async def test_limit_entry_queues_until_filled(self, exchange, context, host):
        await exchange.buy_limit(1.0, 95.0, sl=90.0)
        await deliver_order_changes(context, host)

        assert exchange.triggers.get_active_tasks() == []

        host.set_price(SYMBOL, 95.0)
        await deliver_order_changes(context, host)

        assert [task.name for task in exchange.triggers.get_active_tasks()] == ["execute_stop_loss"]

    @pytest.mark.asyncio
    async def test_destroy_cancels_trigger_tasks(self, exchange, context, host):
        await exchange.buy_market(1.0, tp=110.0, sl=90.0)
        await deliver_order_changes(context, host)

        exchange.destroy()

        assert exchange.triggers.get_active_tasks() == []
        assert context.events.listener_count() == 0


class TestExchangeStopOrders:
    """Test SL/TP sent to the host (trigger_type='exchange')."""

    @pytest.mark.asyncio
    async def test_filled_stop_cancels_sibling(self, context, host):
        exchange = Exchange(context, SYMBOL, prefix="bot1", trigger_type="exchange")
        await exchange.init()
        entry = await exchange.buy_market(1.0, tp=110.0, sl=90.0)
        await deliver_order_changes(context, host)

        open_orders = {o.client_order_id: o for o in await exchange.get_open_orders()}
        assert set(open_orders) == {f"{entry.client_order_id}.SL", f"{entry.client_order_id}.TP"}
        assert exchange.triggers.get_active_tasks() == []

        host.set_price(SYMBOL, 89.0)
        await deliver_order_changes(context, host)

        stop_loss = await host.get_order(open_orders[f"{entry.client_order_id}.SL"].id, SYMBOL)
        take_profit = await host.get_order(open_orders[f"{entry.client_order_id}.TP"].id, SYMBOL)
        assert stop_loss.status == "closed"
        assert take_profit.status == "canceled"
        assert await exchange.get_positions() == []


class TestOrderChanges:
    """Test order update processing."""

    @pytest.mark.asyncio
    async def test_foreign_prefix_not_processed(self, exchange, context):
        from strategykit.core.models import Order

        await context.events.emit_on_order_change(
            Order(id="9", client_order_id=f"{STAMP}-other-M0", symbol=SYMBOL, status="closed")
        )

        listener = context.events.get_listeners(context.events.order_event_name(SYMBOL))[0]
        assert listener.result["result"] == {"status": "not processed", "order_prefix": "other"}

    @pytest.mark.asyncio
    async def test_on_order_change_hook(self, context, host):
        class TrackingExchange(Exchange):
            async def on_order_change(self, order):
                self.seen = getattr(self, "seen", []) + [order.status]
                return {"order": order}

        exchange = TrackingExchange(context, SYMBOL, prefix="bot1")
        await exchange.init()
        await exchange.buy_market(1.0)

        await deliver_order_changes(context, host)

        assert exchange.seen == ["closed"]


class TestAmounts:
    """Test the amount helpers."""

    @pytest.mark.asyncio
    async def test_contracts_and_usd(self, exchange):
        assert exchange.get_contracts_amount(500) == 5.0
        assert exchange.get_contracts_amount(500, execution_price=250) == 2.0
        assert exchange.get_usd_amount(2) == 200.0

    @pytest.mark.asyncio
    async def test_position_by_side_defaults(self, exchange):
        position = await exchange.get_position_by_side("short")

        assert position.contracts == 0

        with pytest.raises(ExchangeError):
            await exchange.get_position_by_side("flat")

    @pytest.mark.asyncio
    async def test_quotes(self, exchange, host):
        host.set_price(SYMBOL, 100.0, spread=1.0)

        assert exchange.close() == 100.0
        assert exchange.ask() == 100.5
        assert exchange.bid() == 99.5
