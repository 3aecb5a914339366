"""
StrategyKit - toolkit for event-driven trading strategies.

A strategy subclasses Script and runs on top of an injected host (the
trading platform) that provides market data, order primitives and the clock.
The toolkit adds an event bus, price and time triggers, candle buffers,
indicators, an exchange facade with SL/TP chains and a report facade.
"""

__version__ = "0.1.0"

from .config import RuntimeConfig, load_config
from .core import EventType, ManagedObject, setup_logging
from .exchange import Exchange
from .host import HostAPI, SimulatedHost
from .runtime import RuntimeContext
from .script import Script
from .triggers import TriggerService

__all__ = [
    "EventType",
    "Exchange",
    "HostAPI",
    "ManagedObject",
    "RuntimeConfig",
    "RuntimeContext",
    "Script",
    "SimulatedHost",
    "TriggerService",
    "load_config",
    "setup_logging",
]
