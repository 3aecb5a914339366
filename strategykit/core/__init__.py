"""
Core infrastructure for StrategyKit.

This package provides the building blocks every other component uses:
- Errors: exception hierarchy with context
- Models: Candle, Order, Position, Balance
- ObjectRegistry / ManagedObject: identity, ownership and destruction
- EventBus: owner-bound publish/subscribe with symbol tick events
- LogJournal: log history and error circuit breaker
"""

from .errors import (
    ConfigError,
    ExchangeError,
    ForcedStopError,
    InvalidHandlerError,
    MissingHandlerError,
    StrategyKitError,
)
from .event_bus import Event, EventBus, EventType, Listener
from .log import LogJournal, setup_logging
from .managed import ManagedObject
from .models import Balance, Candle, Order, Position
from .registry import ObjectRegistry

__all__ = [
    "Balance",
    "Candle",
    "ConfigError",
    "Event",
    "EventBus",
    "EventType",
    "ExchangeError",
    "ForcedStopError",
    "InvalidHandlerError",
    "Listener",
    "LogJournal",
    "ManagedObject",
    "MissingHandlerError",
    "ObjectRegistry",
    "Order",
    "Position",
    "StrategyKitError",
    "setup_logging",
]
