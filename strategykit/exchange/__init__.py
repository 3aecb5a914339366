"""
Exchange facade.

- Exchange: per-symbol order facade with SL/TP chains and emulated stop orders
- ClientOrderId, StopOrderData, StopOrderQueueItem: bookkeeping records
"""

from .exchange import Exchange
from .models import ClientOrderId, StopOrderData, StopOrderQueueItem, TriggerType

__all__ = [
    "ClientOrderId",
    "Exchange",
    "StopOrderData",
    "StopOrderQueueItem",
    "TriggerType",
]
