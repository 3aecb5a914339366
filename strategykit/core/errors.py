"""
Exception hierarchy for StrategyKit.

Every error raised by the toolkit derives from StrategyKitError and carries
a context dictionary, so log records and report tables can show what the
failing call was working on.
"""

from typing import Any, Dict, Optional


class StrategyKitError(Exception):
    """
    Base class for all toolkit errors.

    Attributes:
        context (Dict[str, Any]): Extra data describing the failing call

    Examples:
        >>> err = StrategyKitError("Order rejected", {"symbol": "BTC/USDT"})
        >>> err.context["symbol"]
        'BTC/USDT'
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def add_context(self, **context: Any) -> "StrategyKitError":
        """Merge extra context into the error and return it for re-raising."""
        self.context.update(context)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        return f"{self.message} {self.context}"


class InvalidHandlerError(StrategyKitError, TypeError):
    """
    Raised when a handler cannot be subscribed or registered.

    Handlers must be named methods bound to a ManagedObject owner. Anonymous
    functions (lambdas, partials) and functions the owner does not expose are
    rejected because they cannot be resolved back to an owner for
    owner-based unsubscription.
    """
    pass


class MissingHandlerError(StrategyKitError):
    """
    Raised when a trigger task has neither an inline callback nor a
    registered handler for its name. Always fatal to the task.
    """
    pass


class ForcedStopError(StrategyKitError):
    """Raised by the script once the runtime has been force-stopped."""
    pass


class ConfigError(StrategyKitError):
    """Raised when config.yaml or environment overrides are invalid."""
    pass


class ExchangeError(StrategyKitError):
    """Raised by the exchange facade for invalid order arguments or state."""
    pass
