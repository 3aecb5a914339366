"""
Price trigger: fires tasks when a symbol's price crosses their level.

Tasks are split by the side of the price they were created on. Tasks above
the price (UP) fire once price >= trigger_price, tasks below it (DOWN) once
price <= trigger_price. The nearest level of each side is cached as a border
so most ticks are rejected with two comparisons.
"""

import math
from numbers import Real
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..core.errors import StrategyKitError
from .base import TaskCounter, Trigger
from .handlers import HandlerRegistry
from .models import PriceTriggerDirection, PriceTriggerTask

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


def _is_price(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


class PriceTrigger(Trigger):
    """
    Price-level trigger of one symbol.

    Attributes:
        symbol (str): Symbol whose close price is watched
        upper_min_price (Optional[float]): Lowest level of the UP tasks
        lower_max_price (Optional[float]): Highest level of the DOWN tasks

    Examples:
        >>> trigger = PriceTrigger(context, "BTC/USDT")
        >>> host.close("BTC/USDT")
        90.0
        >>> task_id = trigger.add_task("breakout", 100.0, callback=strategy.on_breakout)
        >>> trigger.upper_min_price
        100.0
    """

    task_type = "price"
    task_model = PriceTriggerTask

    def __init__(
        self,
        context: "RuntimeContext",
        symbol: str,
        id_prefix: Optional[str] = None,
        handlers: Optional[HandlerRegistry] = None,
        task_ids: Optional[TaskCounter] = None,
    ):
        if not symbol:
            raise StrategyKitError("PriceTrigger::__init__ symbol is required")

        super().__init__(
            context,
            id_prefix if id_prefix is not None else symbol,
            handlers=handlers,
            task_ids=task_ids,
        )
        self.symbol = symbol
        self._upper_tasks: Dict[str, PriceTriggerTask] = {}
        self._lower_tasks: Dict[str, PriceTriggerTask] = {}
        self.upper_min_price: Optional[float] = None
        self.lower_max_price: Optional[float] = None

    def _active_map(self) -> Dict[str, PriceTriggerTask]:
        return {**self._lower_tasks, **self._upper_tasks}

    def _remove_active(self, task: PriceTriggerTask) -> None:
        self._upper_tasks.pop(task.id, None)
        self._lower_tasks.pop(task.id, None)

    def _subscribe(self) -> str:
        return self.context.events.subscribe_on_tick(self.on_tick, self, self.symbol)

    def add_task(
        self,
        name: str,
        trigger_price: float,
        callback: Optional[Callable] = None,
        args: Any = None,
        retry: Any = False,
        group: Optional[str] = None,
    ) -> Optional[str]:
        """
        Add a task fired when the price reaches trigger_price.

        The direction is decided against the current close: a level above
        the price is UP, anything else (including the price itself) is DOWN.

        Args:
            name: Task name; selects the named handler when no callback is given
            trigger_price: Price level
            callback: Inline callable, called with args
            args: Value passed to the handler
            retry: Retry budget (int), True for unlimited, False for none
            group: Tasks of the same group are cancelled once one of them fires

        Returns:
            Optional[str]: Task id, or None if trigger_price is not a number
        """
        if not _is_price(trigger_price):
            self.logger.error(
                f"PriceTrigger::add_task Trigger price must be a number, got {trigger_price!r} "
                f"| task={name} symbol={self.symbol}"
            )
            return None

        price = self.context.host.close(self.symbol)
        direction = (
            PriceTriggerDirection.UP if price < trigger_price else PriceTriggerDirection.DOWN
        )

        try:
            task = PriceTriggerTask(
                id=self._next_id(),
                name=name,
                symbol=self.symbol,
                trigger_price=float(trigger_price),
                direction=direction,
                callback=callback,
                args=args,
                retry=False if retry is None else retry,
                group=group,
                created_tms=self._now(),
            )
        except ValidationError as e:
            self.logger.error(
                f"PriceTrigger::add_task Invalid task parameters: {e} | task={name} "
                f"symbol={self.symbol} retry={retry!r}"
            )
            return None

        self._insert(task)
        self._ensure_subscription()

        self.logger.debug(
            f"PriceTrigger::add_task Task {task.id} ({name}) added {direction.value} "
            f"{trigger_price} (price {price})"
        )
        return task.id

    def _insert(self, task: PriceTriggerTask) -> None:
        if task.direction == PriceTriggerDirection.UP:
            self._upper_tasks[task.id] = task
            if self.upper_min_price is None or task.trigger_price < self.upper_min_price:
                self.upper_min_price = task.trigger_price
        else:
            self._lower_tasks[task.id] = task
            if self.lower_max_price is None or task.trigger_price > self.lower_max_price:
                self.lower_max_price = task.trigger_price

    def _on_removed(self) -> None:
        self._recalculate_border_prices()

    def _recalculate_border_prices(self) -> None:
        self.upper_min_price = min(
            (task.trigger_price for task in self._upper_tasks.values()), default=None
        )
        self.lower_max_price = max(
            (task.trigger_price for task in self._lower_tasks.values()), default=None
        )

    def _is_between_borders(self, price: float) -> bool:
        above_lower = self.lower_max_price is None or price > self.lower_max_price
        below_upper = self.upper_min_price is None or price < self.upper_min_price
        return above_lower and below_upper

    async def on_tick(self, event: Any = None) -> None:
        """Execute every task whose level the current close has reached."""
        price = self.context.host.close(self.symbol)

        if self._is_between_borders(price):
            return

        if self.upper_min_price is not None and price >= self.upper_min_price:
            due = [task for task in self._upper_tasks.values() if task.trigger_price <= price]
        else:
            due = [task for task in self._lower_tasks.values() if task.trigger_price >= price]

        await self._run_due(due)

        self._recalculate_border_prices()
        self._release_if_idle()
        self._clear_inactive()

    def _complete(self, task: PriceTriggerTask) -> None:
        self._deactivate(task)
        if task.group is not None:
            self._cancel_group(task)

    def _cancel_group(self, executed: PriceTriggerTask) -> None:
        siblings = [
            task for task in self.get_active_tasks() if task.group == executed.group
        ]
        for task in siblings:
            self._deactivate(task)

        if siblings:
            self.logger.debug(
                f"PriceTrigger::execute_task Group {executed.group}: {len(siblings)} task(s) "
                f"cancelled after {executed.id}"
            )
