"""
Time trigger: fires tasks once host time reaches their trigger time.
"""

import math
from numbers import Real
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..core.event_bus import EventType
from .base import TaskCounter, Trigger
from .handlers import HandlerRegistry
from .models import TimeTriggerTask

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


class TimeTrigger(Trigger):
    """
    Time-based trigger checked on every ON_TICK event.

    Tasks with an interval are rescheduled to now + interval after each
    successful run and stay active until cancelled.

    Examples:
        >>> trigger = TimeTrigger(context)
        >>> task_id = trigger.add_task("rebalance", host.current_time() + 60_000,
        ...                            callback=strategy.rebalance, interval=60_000)
    """

    task_type = "time"
    task_model = TimeTriggerTask

    def __init__(
        self,
        context: "RuntimeContext",
        id_prefix: str = "",
        handlers: Optional[HandlerRegistry] = None,
        task_ids: Optional[TaskCounter] = None,
    ):
        super().__init__(context, id_prefix, handlers=handlers, task_ids=task_ids)
        self._tasks: Dict[str, TimeTriggerTask] = {}
        self.min_trigger_time: Optional[int] = None

    def _active_map(self) -> Dict[str, TimeTriggerTask]:
        return self._tasks

    def _subscribe(self) -> str:
        return self.subscribe(EventType.ON_TICK, self.on_tick)

    def add_task(
        self,
        name: str,
        trigger_time: float,
        callback: Optional[Callable] = None,
        args: Any = None,
        retry: Any = False,
        interval: Optional[int] = None,
    ) -> Optional[str]:
        """
        Add a task fired at trigger_time (ms).

        Returns:
            Optional[str]: Task id, or None if trigger_time is not a finite number
            in the future or the interval/retry values are invalid
        """
        now = self._now()
        if (
            not isinstance(trigger_time, Real)
            or isinstance(trigger_time, bool)
            or not math.isfinite(trigger_time)
        ):
            self.logger.error(
                f"TimeTrigger::add_task Trigger time must be a number, got {trigger_time!r} "
                f"| task={name}"
            )
            return None

        if trigger_time <= now:
            self.logger.error(
                f"TimeTrigger::add_task Trigger time {trigger_time} is not in the future "
                f"(now {now}) | task={name}"
            )
            return None

        try:
            task = TimeTriggerTask(
                id=self._next_id(),
                name=name,
                trigger_time=int(trigger_time),
                interval=interval or None,
                callback=callback,
                args=args,
                retry=False if retry is None else retry,
                created_tms=now,
            )
        except ValidationError as e:
            self.logger.error(
                f"TimeTrigger::add_task Invalid task parameters: {e} | task={name} "
                f"interval={interval!r} retry={retry!r}"
            )
            return None

        self._insert(task)
        self._ensure_subscription()

        self.logger.debug(
            f"TimeTrigger::add_task Task {task.id} ({name}) scheduled at {trigger_time}"
        )
        return task.id

    def _insert(self, task: TimeTriggerTask) -> None:
        self._tasks[task.id] = task
        if self.min_trigger_time is None or task.trigger_time < self.min_trigger_time:
            self.min_trigger_time = task.trigger_time

    def _on_removed(self) -> None:
        self._recalculate_min_trigger_time()

    def _recalculate_min_trigger_time(self) -> None:
        self.min_trigger_time = min(
            (task.trigger_time for task in self._tasks.values()), default=None
        )

    async def on_tick(self, event: Any = None) -> None:
        now = self._now()
        if self.min_trigger_time is None or now < self.min_trigger_time:
            return

        due = [task for task in self._tasks.values() if task.trigger_time <= now]
        await self._run_due(due)

        self._recalculate_min_trigger_time()
        self._release_if_idle()
        self._clear_inactive()

    def _complete(self, task: TimeTriggerTask) -> None:
        if task.interval:
            task.trigger_time = self._now() + task.interval
            self._recalculate_min_trigger_time()
            return
        self._deactivate(task)
