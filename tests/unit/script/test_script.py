"""
Unit tests for the Script lifecycle.

Tests cover:
- Symbol resolution from host arguments
- start / tick / order change / timer / args / report action entry points
- Error handling and forced stops
- Teardown on stop()
"""

from typing import Any, List
from unittest.mock import AsyncMock

import pytest

from strategykit.config import RuntimeConfig
from strategykit.core.errors import ForcedStopError, StrategyKitError
from strategykit.core.event_bus import EventType
from strategykit.core.managed import ManagedObject
from strategykit.core.models import Order
from strategykit.host.simulated import SimulatedHost
from strategykit.script import Script

SYMBOL = "BTC/USDT"


class RecordingScript(Script):
    """Strategy recording every hook call."""

    def __init__(self, host, config=None, symbols=None):
        super().__init__(host, config, symbols)
        self.hooks: List[Any] = []
        self.fail_in = set()

    def _record(self, name: str, *args: Any) -> None:
        self.hooks.append((name, *args))
        if name in self.fail_in:
            raise RuntimeError(f"{name} failed")

    async def on_init(self):
        self._record("on_init")

    async def on_tick(self, data=None):
        self._record("on_tick", data)

    async def on_order_change(self, order):
        self._record("on_order_change", order.id)

    async def on_timer(self):
        self._record("on_timer")

    async def on_args_update(self, args):
        self._record("on_args_update", args)

    async def on_report_action(self, action, payload):
        self._record("on_report_action", action, payload)

    async def on_stop(self):
        self._record("on_stop")


class Probe(ManagedObject):
    """Listener recording the events it receives, in a shared journal."""

    def __init__(self, context, journal: List[Any]):
        super().__init__(context, "Probe")
        self.journal = journal

    def on_event(self, event):
        self.journal.append((event.name, event.data))


@pytest.fixture
def make_script(host):
    """Create scripts on the test host; runtimes not stopped by the test are closed."""
    scripts = []

    def _make(cls=RecordingScript, on_host=None, **kwargs):
        script = cls(on_host or host, **kwargs)
        scripts.append(script)
        return script

    yield _make

    for script in scripts:
        if not script.is_finished:
            script.context.close()


def listen(script, journal, *events):
    probe = Probe(script.context, journal)
    for event in events:
        probe.subscribe(event, probe.on_event)
    return probe


class TestSymbols:
    """Test symbol resolution."""

    def test_tester_symbol_arg(self, make_script):
        script = make_script()

        assert script.symbols == [SYMBOL]

    def test_live_symbols_arg(self, make_script):
        host = SimulatedHost(tester=False, args={"symbols": "BTC/USDT, ETH/USDT,garbage"})

        script = make_script(on_host=host)

        assert script.symbols == ["BTC/USDT", "ETH/USDT"]

    def test_explicit_symbols(self, make_script):
        script = make_script(symbols=["ETH/USDT"])

        assert script.symbols == ["ETH/USDT"]

    def test_missing_symbols(self):
        with pytest.raises(StrategyKitError, match="symbols is not defined"):
            RecordingScript(SimulatedHost())


class TestStart:
    """Test Script.start()."""

    @pytest.mark.asyncio
    async def test_start_runs_on_init_and_emits(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_INIT)

        await script.start()

        assert script.is_initialized
        assert script.balance_total == 10000.0
        assert script.balance_free == 10000.0
        assert script.hooks == [("on_init",)]
        assert journal == [("on_init", None)]

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, make_script):
        script = make_script()

        await script.start()
        await script.start()

        assert script.hooks == [("on_init",)]

    @pytest.mark.asyncio
    async def test_on_init_error_is_logged(self, make_script):
        script = make_script()
        script.fail_in.add("on_init")

        await script.start()

        errors = script.context.journal.get_logs("ERROR")
        assert any("on_init failed" in record["message"] for record in errors)

    @pytest.mark.asyncio
    async def test_balance_failure_raises(self, make_script, host, monkeypatch):
        monkeypatch.setattr(host, "get_balance", AsyncMock(side_effect=ConnectionError("offline")))
        script = make_script()

        with pytest.raises(StrategyKitError, match="get_balance failed"):
            await script.start()


class TestRunOnTick:
    """Test Script.run_on_tick()."""

    @pytest.mark.asyncio
    async def test_tick_pipeline_order(self, make_script):
        """Test that ON_BEFORE_TICK, on_tick and ON_TICK run in this order."""
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_BEFORE_TICK, EventType.ON_TICK)
        script.hooks = journal

        assert await script.run_on_tick({"price": 100.0}) is True

        assert journal == [
            ("on_before_tick", {"price": 100.0}),
            ("on_tick", {"price": 100.0}),
            ("on_tick", {"price": 100.0}),
        ]
        assert script.iterator == 1

    @pytest.mark.asyncio
    async def test_locked_tick_is_skipped(self, make_script):
        script = make_script()
        script._is_tick_locked = True

        assert await script.run_on_tick() is False
        assert script.hooks == []
        assert script.iterator == 0

    @pytest.mark.asyncio
    async def test_hook_error_is_logged(self, make_script):
        script = make_script()
        script.fail_in.add("on_tick")

        assert await script.run_on_tick() is True

        assert script.iterator == 1
        assert not script._is_tick_locked
        errors = script.context.journal.get_logs("ERROR")
        assert any("on_tick failed" in record["message"] for record in errors)

    @pytest.mark.asyncio
    async def test_stopped_runtime_raises(self, make_script, host):
        script = make_script()
        script.context.request_stop("Too many errors count=21")

        with pytest.raises(ForcedStopError, match="Too many errors"):
            await script.run_on_tick()

        assert host.stopped

    @pytest.mark.asyncio
    async def test_force_stop_inside_hook_propagates(self, make_script, host):
        class StoppingScript(RecordingScript):
            async def on_tick(self, data=None):
                self.force_stop("Drawdown limit")

        script = make_script(StoppingScript)

        with pytest.raises(ForcedStopError, match="Drawdown limit"):
            await script.run_on_tick()

        assert host.stop_reason == "Drawdown limit"
        assert script.context.is_stopped

    @pytest.mark.asyncio
    async def test_symbol_tick_events_emitted(self, make_script, host):
        script = make_script()
        journal = []
        probe = Probe(script.context, journal)
        script.context.events.subscribe_on_tick(probe.on_event, probe, SYMBOL)

        host.advance(script.context.events.default_tick_interval)
        await script.run_on_tick()

        assert journal == [(f"emit_on_tick_{SYMBOL}", None)]


class TestRunOnOrderChange:
    """Test Script.run_on_order_change()."""

    @pytest.mark.asyncio
    async def test_dispatch(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_ORDER_CHANGE)
        order = Order(id="1", symbol=SYMBOL, status="closed", amount=1.0, filled=1.0)

        await script.run_on_order_change([order])

        assert script.hooks == [("on_order_change", "1")]
        assert journal == [("on_order_change", order)]
        assert script.max_orders == script.context.config.max_orders_tester - 1

    @pytest.mark.asyncio
    async def test_max_orders_force_stops(self, make_script, host):
        """Test that the tester order budget stops the script."""
        script = make_script(config=RuntimeConfig(max_orders_tester=2))
        orders = [Order(id=str(i), symbol=SYMBOL) for i in range(3)]

        with pytest.raises(ForcedStopError, match="Max orders reached"):
            await script.run_on_order_change(orders)

        assert script.hooks == [("on_order_change", "0")]
        assert host.stop_reason == "Max orders reached"

    @pytest.mark.asyncio
    async def test_live_duplicate_closed_order_skipped(self, make_script):
        host = SimulatedHost(tester=False, args={"symbols": SYMBOL})
        script = make_script(on_host=host)
        closed = Order(id="7", symbol=SYMBOL, status="closed")

        await script.run_on_order_change([closed, Order(id="8", symbol=SYMBOL), closed])

        assert script.hooks == [("on_order_change", "7"), ("on_order_change", "8")]
        warnings = script.context.journal.get_logs("WARNING")
        assert any("came twice: 7" in record["message"] for record in warnings)


class TestOtherEntryPoints:
    @pytest.mark.asyncio
    async def test_timer(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_TIMER)

        await script.run_on_timer()

        assert script.hooks == [("on_timer",)]
        assert journal == [("on_timer", None)]
        assert script.iterator == 1

    @pytest.mark.asyncio
    async def test_args_update(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_ARGS_UPDATE)

        await script.run_args_update({"size_usd": 50})

        assert script.hooks == [("on_args_update", {"size_usd": 50})]
        assert journal == [("on_args_update", {"size_usd": 50})]

    @pytest.mark.asyncio
    async def test_report_action(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_REPORT_ACTION)

        await script.run_on_report_action("close_all", {"confirm": True})

        assert script.hooks == [("on_report_action", "close_all", {"confirm": True})]
        assert journal == [
            ("on_report_action", {"action": "close_all", "payload": {"confirm": True}})
        ]


class TestStop:
    """Test Script.stop()."""

    @pytest.mark.asyncio
    async def test_stop_sequence_and_teardown(self, make_script):
        script = make_script()
        journal = []
        listen(script, journal, EventType.ON_BEFORE_STOP, EventType.ON_STOP, EventType.ON_AFTER_STOP)
        script.hooks = journal
        exchange = await script.create_exchange(SYMBOL, prefix="bot1")

        await script.stop()

        assert journal == [
            ("on_before_stop", None),
            ("on_stop", None),
            ("on_stop",),
            ("on_after_stop", None),
        ]
        assert script.is_finished
        assert script.is_destroyed
        assert exchange.is_destroyed
        assert script.context.triggers.is_destroyed
        assert not script.context.journal.is_attached
        assert script.context.events.listener_count() == 0

    @pytest.mark.asyncio
    async def test_stop_twice(self, make_script):
        script = make_script()

        await script.stop()
        await script.stop()

        assert script.hooks == [("on_stop",)]

    @pytest.mark.asyncio
    async def test_on_stop_error_still_finishes(self, make_script):
        script = make_script()
        script.fail_in.add("on_stop")

        await script.stop()

        assert script.is_finished
        assert script.is_destroyed


class TestCreateExchange:
    @pytest.mark.asyncio
    async def test_exchange_uses_script_options(self, make_script):
        host = SimulatedHost(args={"symbol": SYMBOL, "connection_name": "gateio", "hedge_mode": True})
        host.set_price(SYMBOL, 100.0)
        script = make_script(on_host=host)

        exchange = await script.create_exchange(SYMBOL, prefix="bot1", leverage=5)

        assert exchange.is_init
        assert exchange.connection_name == "gateio"
        assert exchange.hedge_mode is True
        assert host.leverage[SYMBOL] == 5
        assert exchange in script.owned
