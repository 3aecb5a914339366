"""
Pytest configuration and shared fixtures for StrategyKit tests.

This module provides:
- A simulated host with a price for the default symbol
- A runtime context torn down after each test
- Recorder objects: ManagedObjects whose methods record their calls
"""

from typing import Any, List

import pytest

from strategykit.config import RuntimeConfig
from strategykit.core.managed import ManagedObject
from strategykit.core.models import Candle
from strategykit.host.simulated import SimulatedHost
from strategykit.runtime import RuntimeContext

SYMBOL = "BTC/USDT"
START_TIME = 1_700_000_000_000


class Recorder(ManagedObject):
    """Managed object recording every call of its handler methods."""

    def __init__(self, context, id_prefix: str = "Test"):
        super().__init__(context, id_prefix)
        self.calls: List[Any] = []

    def on_event(self, event):
        self.calls.append(event)
        return len(self.calls)

    async def on_async_event(self, event):
        self.calls.append(event)
        return "async"

    def fail(self, event):
        self.calls.append(event)
        raise RuntimeError("handler failed")

    def handle_task(self, args):
        self.calls.append(args)
        return "done"


@pytest.fixture
def host():
    """Simulated host at START_TIME with BTC/USDT priced at 100."""
    host = SimulatedHost(start_time=START_TIME, args={"symbol": SYMBOL})
    host.set_price(SYMBOL, 100.0)
    return host


@pytest.fixture
def config():
    return RuntimeConfig()


@pytest.fixture
def context(host, config):
    """Runtime context; closed (journal detached, services destroyed) after the test."""
    context = RuntimeContext(host, config)
    yield context
    context.close()


@pytest.fixture
def recorder(context):
    return Recorder(context)


@pytest.fixture
def make_recorder(context):
    """Factory for additional Recorder objects in the test's context."""
    def _make(id_prefix: str = "Test") -> Recorder:
        return Recorder(context, id_prefix)
    return _make


@pytest.fixture
def sample_candles():
    """Provide a sequence of hourly candles with rising closes."""
    base_price = 100.0
    candles = []

    for i in range(20):
        close = base_price + i
        candles.append(Candle(
            timestamp=START_TIME - (20 - i) * 3_600_000,
            open=close - 0.5,
            high=close + 1,
            low=close - 1,
            close=close,
            volume=10.0 + i,
        ))

    return candles
