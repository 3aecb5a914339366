"""
Bookkeeping records of the exchange facade.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


TriggerType = Literal["script", "exchange"]


class ClientOrderId(BaseModel):
    """
    Parsed client order id.

    Format: '<time/100>-<prefix>-<M|L|R><n>' for plain orders and
    '<owner client order id>.<SL|TP>' for linked stop orders.

    Examples:
        >>> parsed = Exchange.parse_client_order_id("17000000-ab12-M0.SL")
        >>> parsed.owner_client_order_id, parsed.trigger_order_type
        ('17000000-ab12-M0', 'SL')
    """

    client_order_id: Optional[str] = None
    unique_prefix: Optional[str] = None
    prefix: Optional[str] = None
    short_client_id: Optional[str] = None
    owner_client_order_id: Optional[str] = None
    trigger_order_type: Optional[str] = None


class StopOrderQueueItem(BaseModel):
    """SL/TP levels waiting for their owner order to fill."""

    owner_client_order_id: str
    sl: Optional[float] = Field(default=None, description="Stop loss price")
    tp: Optional[float] = Field(default=None, description="Take profit price")
    prefix: str


class StopOrderData(BaseModel):
    """Stop orders created for a filled owner order."""

    owner_client_order_id: str
    sl_order_id: Optional[str] = None
    sl_client_order_id: Optional[str] = None
    tp_order_id: Optional[str] = None
    tp_client_order_id: Optional[str] = None
