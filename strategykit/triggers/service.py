"""
Trigger service: one entry point for price and time tasks.

The service owns a TimeTrigger and one PriceTrigger per symbol. All of them
share the service's handler registry and task id sequence, so a task id is
unique across the service and a named handler is registered once.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..core.managed import ManagedObject
from .base import TaskCounter, Trigger
from .handlers import HandlerRegistry
from .models import TriggerTask
from .price_trigger import PriceTrigger
from .time_trigger import TimeTrigger

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


class TriggerService(ManagedObject):
    """
    Facade over the price and time triggers.

    Attributes:
        symbol (Optional[str]): Default symbol of price tasks

    Examples:
        >>> triggers = TriggerService(context, symbol="BTC/USDT")
        >>> triggers.register_handler("closePosition", strategy.close_position, strategy)
        >>> triggers.add_task_by_price("closePosition", 105.0, args={"reason": "tp"})
        'price#1'
        >>> triggers.add_task_by_time("closePosition", host.current_time() + 60_000)
        'time#2'
    """

    def __init__(self, context: "RuntimeContext", id_prefix: str = "", symbol: Optional[str] = None):
        super().__init__(context, id_prefix)
        self.symbol = symbol
        self._id_prefix = id_prefix
        self._handlers = HandlerRegistry(log=self.logger)
        self._task_ids = TaskCounter()
        self._price_triggers: Dict[str, PriceTrigger] = {}
        self._time_trigger = self.own(
            TimeTrigger(context, id_prefix, handlers=self._handlers, task_ids=self._task_ids)
        )

    @property
    def time_trigger(self) -> TimeTrigger:
        return self._time_trigger

    def price_trigger(self, symbol: Optional[str] = None) -> Optional[PriceTrigger]:
        """Price trigger of a symbol, created on first use."""
        symbol = symbol or self.symbol
        if not symbol:
            self.logger.error("TriggerService::price_trigger No symbol given and no default symbol")
            return None

        trigger = self._price_triggers.get(symbol)
        if trigger is None:
            trigger = self.own(
                PriceTrigger(
                    self.context,
                    symbol,
                    id_prefix=self._id_prefix or symbol,
                    handlers=self._handlers,
                    task_ids=self._task_ids,
                )
            )
            self._price_triggers[symbol] = trigger
        return trigger

    def _triggers(self) -> List[Trigger]:
        return [*self._price_triggers.values(), self._time_trigger]

    # Tasks

    def add_task_by_price(
        self,
        name: str,
        trigger_price: float,
        symbol: Optional[str] = None,
        callback: Optional[Callable] = None,
        args: Any = None,
        retry: Any = False,
        group: Optional[str] = None,
    ) -> Optional[str]:
        trigger = self.price_trigger(symbol)
        if trigger is None:
            return None
        return trigger.add_task(
            name, trigger_price, callback=callback, args=args, retry=retry, group=group
        )

    def add_task_by_time(
        self,
        name: str,
        trigger_time: int,
        callback: Optional[Callable] = None,
        args: Any = None,
        retry: Any = False,
        interval: Optional[int] = None,
    ) -> Optional[str]:
        return self._time_trigger.add_task(
            name, trigger_time, callback=callback, args=args, retry=retry, interval=interval
        )

    def cancel_task(self, task_id: str) -> bool:
        for trigger in self._triggers():
            if trigger.has_active_task(task_id):
                return trigger.cancel_task(task_id)

        self.logger.error(f"TriggerService::cancel_task Task {task_id} not found")
        return False

    def cancel_all(self) -> None:
        for trigger in self._triggers():
            trigger.cancel_all()

    def get_task(self, task_id: str) -> Optional[TriggerTask]:
        for trigger in self._triggers():
            task = trigger.get_task(task_id)
            if task is not None:
                return task
        return None

    def get_active_tasks(self) -> List[TriggerTask]:
        return [task for trigger in self._triggers() for task in trigger.get_active_tasks()]

    def get_inactive_tasks(self) -> List[TriggerTask]:
        return [task for trigger in self._triggers() for task in trigger.get_inactive_tasks()]

    def get_all_tasks(self) -> List[TriggerTask]:
        return self.get_inactive_tasks() + self.get_active_tasks()

    def get_tasks_by_name(self, name: str) -> List[TriggerTask]:
        return [task for task in self.get_active_tasks() if task.name == name]

    # Handlers

    def register_handler(self, task_name: str, handler: Callable, owner: Any) -> None:
        """
        Register a named handler for tasks created without a callback.

        Raises:
            InvalidHandlerError: If the handler is invalid or task_name is taken
        """
        self._handlers.register(task_name, handler, owner)

    def has_handler(self, task_name: str) -> bool:
        return self._handlers.has(task_name)

    # Persistence

    def before_store(self) -> None:
        for trigger in self._triggers():
            trigger.before_store()

    def after_restore(self) -> None:
        for trigger in self._triggers():
            trigger.after_restore()

    def snapshot(self) -> Dict[str, Any]:
        """
        Serialisable state of all active tasks without inline callbacks.

        Returns:
            Dict[str, Any]: {'price': {symbol: [task, ...]}, 'time': [task, ...]}
        """
        return {
            "price": {
                symbol: trigger.snapshot() for symbol, trigger in self._price_triggers.items()
            },
            "time": self._time_trigger.snapshot(),
        }

    def restore(self, state: Dict[str, Any]) -> int:
        restored = 0
        for symbol, tasks in state.get("price", {}).items():
            restored += self.price_trigger(symbol).restore(tasks)
        restored += self._time_trigger.restore(state.get("time", []))
        return restored
