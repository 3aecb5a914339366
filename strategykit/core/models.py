"""
Market and order data models with validation.

This module defines the records exchanged with the host platform:
- Candle: OHLCV bar produced by the candle buffer
- Order: Order state as reported by the host
- Position: Open position per side
- Balance: Account balance snapshot
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator


OrderType = Literal["market", "limit"]
OrderSide = Literal["buy", "sell"]
OrderStatus = Literal["open", "closed", "canceled", "untriggered"]


class Candle(BaseModel):
    """
    Mutable OHLCV bar.

    The forming bar of a candle buffer is updated in place on every tick,
    so the model is not frozen.

    Attributes:
        timestamp: Bar open time in milliseconds, aligned to the timeframe
        open: Opening price
        high: Highest price seen in the bar
        low: Lowest price seen in the bar
        close: Last price seen in the bar
        volume: Traded volume (0 when the host does not report it)

    Examples:
        >>> candle = Candle(timestamp=0, open=100, high=105, low=99, close=103)
        >>> candle.high >= candle.low
        True
    """

    timestamp: int = Field(ge=0, description="Bar open time in ms")
    open: float = Field(description="Opening price")
    high: float = Field(description="Highest price")
    low: float = Field(description="Lowest price")
    close: float = Field(description="Last price")
    volume: float = Field(default=0.0, ge=0, description="Traded volume")

    @model_validator(mode="after")
    def validate_price_range(self) -> "Candle":
        """Ensure high >= low."""
        if self.high < self.low:
            raise ValueError(
                f"Invalid Candle: high ({self.high}) must not be below "
                f"low ({self.low})"
            )
        return self

    def update(self, price: float) -> None:
        """Fold a new trade price into the bar."""
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price


class Order(BaseModel):
    """
    Order state as seen by the exchange facade.

    Orders emulated by script triggers have no exchange id yet and report
    status 'untriggered' until their trigger task fires.

    Examples:
        >>> order = Order(id="1", client_order_id="1-x-M0", symbol="BTC/USDT",
        ...               type="market", side="buy", amount=0.1, price=100.0)
        >>> order.status
        'open'
    """

    id: Optional[str] = Field(default=None, description="Exchange order id")
    client_order_id: str = Field(default="", description="Client order id")
    symbol: str = Field(default="", description="Trading pair symbol")
    type: OrderType = Field(default="market", description="Order type")
    side: OrderSide = Field(default="buy", description="Order side")
    amount: float = Field(default=0.0, ge=0, description="Order size")
    price: float = Field(default=0.0, ge=0, description="Limit or fill price")
    status: OrderStatus = Field(default="open", description="Order status")
    filled: float = Field(default=0.0, ge=0, description="Filled amount")
    reduce_only: bool = Field(default=False)
    timestamp: int = Field(default=0, description="Last update time in ms")
    params: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @model_validator(mode="after")
    def validate_fill(self) -> "Order":
        """Filled amount never exceeds the order amount."""
        if self.filled > self.amount:
            raise ValueError(
                f"Invalid Order: filled ({self.filled}) exceeds amount ({self.amount})"
            )
        return self


class Position(BaseModel):
    """Open position for one side of a symbol."""

    symbol: str = Field(min_length=1, description="Trading pair symbol")
    side: Literal["long", "short"] = Field(description="Position direction")
    contracts: float = Field(default=0.0, ge=0, description="Position size")
    entry_price: float = Field(default=0.0, ge=0, description="Average entry price")

    def profit(self, price: float) -> float:
        """Unrealized profit of the position at the given price."""
        direction = 1 if self.side == "long" else -1
        return (price - self.entry_price) * self.contracts * direction


class Balance(BaseModel):
    """Account balance snapshot in the quote currency."""

    total: float = Field(default=0.0, description="Total equity")
    free: float = Field(default=0.0, description="Free margin")
    used: float = Field(default=0.0, description="Margin in use")
