"""
Integration tests: a complete strategy on the simulated host.

The strategy enters long through a named price task, attaches SL/TP through
the exchange facade and exits through the script-emulated stop orders while
the candle buffer, a time task and the report follow along.
"""

import pytest

from strategykit import Script

SYMBOL = "BTC/USDT"
TICK_STEP = 5000


class BreakoutBot(Script):
    async def on_init(self):
        self.heartbeats = 0
        self.entry = None
        self.exchange = await self.create_exchange(self.symbols[0], prefix="brk")
        self.buffer = await self.context.candles.create_buffer(self.symbols[0], "1m", preload_count=0)

        self.context.triggers.register_handler("enter_long", self.enter_long, self)
        self.context.triggers.add_task_by_price(
            "enter_long", 105.0, symbol=self.symbols[0], args={"size": 1.0}
        )
        self.context.triggers.add_task_by_time(
            "heartbeat", self.host.current_time() + 2 * TICK_STEP, callback=self.heartbeat
        )

    async def enter_long(self, args):
        self.entry = await self.exchange.buy_market(args["size"], tp=110.0, sl=100.0)
        return self.entry.client_order_id

    def heartbeat(self, args):
        self.heartbeats += 1

    async def on_stop(self):
        balance = await self.host.get_balance()
        self.context.report.card_set("Balance", balance.total)
        await self.context.report.update_report()


async def drive(bot, host, prices):
    for price in prices:
        host.set_price(SYMBOL, price, timestamp=host.current_time() + TICK_STEP)
        await bot.run_on_tick()
        await bot.run_on_order_change(host.pop_order_changes())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exit_price, balance, closed_by",
    [(111.0, 10005.0, "TP"), (99.0, 9993.0, "SL")],
)
async def test_breakout_entry_and_bracket_exit(host, exit_price, balance, closed_by):
    """Test entry on breakout, SL/TP creation on fill and exit by one of them."""
    bot = BreakoutBot(host)
    await bot.start()
    try:
        await drive(bot, host, [102.0, 106.0])

        assert bot.entry is not None
        assert bot.heartbeats == 1
        assert bot.context.triggers.get_active_tasks() == []
        bracket = {task.name: task for task in bot.exchange.triggers.get_active_tasks()}
        assert set(bracket) == {"execute_stop_loss", "execute_take_profit"}
        assert {task.group for task in bracket.values()} == {bot.entry.client_order_id}

        await drive(bot, host, [108.0, exit_price])

        assert bot.exchange.triggers.get_active_tasks() == []
        assert await bot.exchange.get_positions() == []
        assert host.balance.total == pytest.approx(balance)
        exits = [
            task for task in bot.exchange.triggers.get_inactive_tasks() if task.executed_times
        ]
        assert len(exits) == 1
        assert exits[0].result.client_order_id == f"{bot.entry.client_order_id}.{closed_by}"

        candle = bot.buffer.current_candle
        assert candle.high == max(108.0, exit_price)
        assert candle.low == min(102.0, exit_price)
        assert await bot.context.indicators.sma(SYMBOL, "1m", period=1) == exit_price
    finally:
        await bot.stop()

    assert bot.is_finished
    assert len(host.reports) == 1
    cards = [block for block in host.reports[0]["blocks"] if block["type"] == "card"]
    assert cards[0]["data"]["value"] == pytest.approx(balance)


@pytest.mark.asyncio
async def test_error_storm_force_stops_script(host):
    """Test that repeated hook errors trip the breaker and stop the script."""
    from strategykit.config import RuntimeConfig
    from strategykit.core.errors import ForcedStopError

    class BrokenBot(Script):
        async def on_tick(self, data=None):
            raise RuntimeError("indicator not ready")

    bot = BrokenBot(host, RuntimeConfig(max_errors_tester=3))
    await bot.start()
    try:
        for _ in range(4):
            await bot.run_on_tick()

        assert host.stopped
        assert host.stop_reason == "Too many errors count=4"

        with pytest.raises(ForcedStopError):
            await bot.run_on_tick()
    finally:
        await bot.stop()
