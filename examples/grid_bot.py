"""
Simple grid bot running on the simulated host.

Every symbol gets a GridBasket: it buys once the price falls a grid step
below the last entry and closes each entry with a take-profit one step
above it. Baskets are created by a time task a minute after start.

Run:
    python examples/grid_bot.py
"""

import asyncio
import math
import random

from loguru import logger

from strategykit import Script, SimulatedHost, load_config, setup_logging
from strategykit.core import ManagedObject


class GridBasket(ManagedObject):
    def __init__(self, script: "GridBot", symbol: str, size_usd: float, step_percent: float):
        super().__init__(script.context, symbol)
        self.script = script
        self.symbol = symbol
        self.size_usd = size_usd
        self.step = step_percent / 100
        self.exchange = None
        self.last_entry = None

    async def init(self) -> None:
        self.exchange = await self.script.create_exchange(self.symbol)
        await self.open_entry()

    async def open_entry(self, args=None) -> None:
        price = self.exchange.close()
        amount = self.exchange.get_contracts_amount(self.size_usd)
        await self.exchange.buy_market(amount, tp=price * (1 + self.step))
        self.last_entry = price

        self.context.triggers.add_task_by_price(
            "grid_entry",
            price * (1 - self.step),
            symbol=self.symbol,
            callback=self.open_entry,
        )
        self.context.report.table_update(
            "Entries", {"id": f"{self.symbol}-{self.context.host.current_time()}", "symbol": self.symbol, "price": price}
        )


class GridBot(Script):
    async def on_init(self) -> None:
        self.baskets = {}
        self.context.report.set_title("Simple grid bot")
        self.context.triggers.add_task_by_time(
            "create_baskets",
            self.host.current_time() + 60 * 1000,
            callback=self.create_baskets,
        )

    async def create_baskets(self, args=None) -> None:
        size_usd = self.host.get_arg("size_usd", 100)
        step = self.host.get_arg("grid_step_percent", 5)
        for symbol in self.symbols:
            basket = self.own(GridBasket(self, symbol, size_usd, step))
            await basket.init()
            self.baskets[symbol] = basket

    async def on_tick(self, data=None) -> None:
        balance = await self.host.get_balance()
        self.context.report.chart_add_point("Equity", "balance", balance.total)

    async def on_stop(self) -> None:
        balance = await self.host.get_balance()
        self.context.report.card_set("Balance", balance.total)
        await self.context.report.update_report()


async def main() -> None:
    config = load_config()
    setup_logging(config.log_level)

    symbol = "BTC/USDT"
    host = SimulatedHost(
        start_time=1_700_000_000_000,
        args={"symbol": symbol, "size_usd": 100, "grid_step_percent": 2},
    )
    host.set_price(symbol, 100.0)

    bot = GridBot(host, config)
    await bot.start()

    rng = random.Random(7)
    price = 100.0
    for i in range(2000):
        price = max(1.0, price * math.exp(rng.gauss(0, 0.004)))
        host.set_price(symbol, round(price, 2), timestamp=host.current_time() + 5000)
        await bot.run_on_tick()
        await bot.run_on_order_change(host.pop_order_changes())
        if host.stopped:
            break

    await bot.stop()
    logger.info(f"Final balance: {host.balance.total:.2f}")


if __name__ == "__main__":
    asyncio.run(main())
