"""
Host platform contract.

The trading platform hosting a script injects market data accessors, order
primitives, tester-mode detection and a forced-stop signal. The toolkit only
consumes them through this interface; a concrete host adapter implements it.

Market data accessors and the clock are synchronous. Everything that talks
to an exchange is a coroutine.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.models import Balance, Candle, Order, Position


class HostAPI(ABC):
    """
    Primitives provided by the host runtime.

    Time is expressed in milliseconds. current_time(symbol) returns the
    symbol's last tick time, which in tester mode is the simulated time.
    """

    # Market data

    @abstractmethod
    def current_time(self, symbol: Optional[str] = None) -> int:
        """Current logical time (ms), optionally of a symbol's feed."""

    @abstractmethod
    def close(self, symbol: str) -> float:
        """Last traded price."""

    @abstractmethod
    def open(self, symbol: str) -> float:
        pass

    @abstractmethod
    def high(self, symbol: str) -> float:
        pass

    @abstractmethod
    def low(self, symbol: str) -> float:
        pass

    @abstractmethod
    def bid(self, symbol: str) -> float:
        pass

    @abstractmethod
    def ask(self, symbol: str) -> float:
        pass

    @abstractmethod
    def volume(self, symbol: str) -> float:
        pass

    @abstractmethod
    async def get_history(
        self, symbol: str, timeframe: str, start_time: int, limit: int
    ) -> List[Candle]:
        """Closed bars starting at start_time (ms), oldest first."""

    @abstractmethod
    async def symbol_info(self, symbol: str) -> Dict[str, Any]:
        """Exchange limits of a symbol ({'limits': {'amount': {'min': ...}}, ...})."""

    # Runtime

    @abstractmethod
    def is_tester(self) -> bool:
        pass

    @abstractmethod
    def get_arg(self, key: str, default: Any = None) -> Any:
        """Script argument set by the user in the host UI."""

    @abstractmethod
    def force_stop(self, reason: str) -> None:
        """Ask the host to terminate the script. Must not log."""

    # Orders and account

    @abstractmethod
    async def create_order(
        self,
        symbol: str,
        type: str,
        side: str,
        amount: float,
        price: float,
        params: Optional[Dict[str, Any]] = None,
    ) -> Order:
        pass

    @abstractmethod
    async def modify_order(
        self, order_id: str, symbol: str, type: str, side: str, amount: float, price: float
    ) -> Order:
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: str) -> Order:
        pass

    @abstractmethod
    async def get_order(self, order_id: str, symbol: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_open_orders(self, symbol: str) -> List[Order]:
        pass

    @abstractmethod
    async def get_positions(self, symbol: Optional[str] = None) -> List[Position]:
        pass

    @abstractmethod
    async def get_balance(self) -> Balance:
        pass

    @abstractmethod
    async def set_leverage(self, leverage: float, symbol: str) -> None:
        pass

    # Presentation

    @abstractmethod
    async def update_report(self, report: Dict[str, Any]) -> None:
        """Accept a structured block list for rendering."""
