"""
Trigger engine.

- TriggerService: facade over price and time triggers
- PriceTrigger / TimeTrigger: task sets checked on tick events
- HandlerRegistry: named handlers for restorable tasks
"""

from .base import TaskCounter, Trigger
from .handlers import HandlerRegistry
from .models import PriceTriggerDirection, PriceTriggerTask, TimeTriggerTask, TriggerTask
from .price_trigger import PriceTrigger
from .service import TriggerService
from .time_trigger import TimeTrigger

__all__ = [
    "HandlerRegistry",
    "PriceTrigger",
    "PriceTriggerDirection",
    "PriceTriggerTask",
    "TaskCounter",
    "TimeTrigger",
    "TimeTriggerTask",
    "Trigger",
    "TriggerService",
    "TriggerTask",
]
