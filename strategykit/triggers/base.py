"""
Shared machinery of the price and time triggers.

A trigger owns a set of active tasks and a bounded history of inactive ones.
Executing a task resolves its callback (inline callback first, then the
named handler), runs it with the retry budget, and records the outcome on
the task before moving it out of the active set.
"""

import inspect
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type

from ..core.errors import ForcedStopError, MissingHandlerError
from ..core.managed import ManagedObject
from .handlers import HandlerRegistry
from .models import TriggerTask

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


class TaskCounter:
    """
    Task id sequence shared by the triggers of one service.

    Restored ids are observed so new tasks never reuse them.
    """

    def __init__(self):
        self.value = 0

    def next(self) -> int:
        self.value += 1
        return self.value

    def observe(self, task_id: str) -> None:
        _, _, number = task_id.rpartition("#")
        if number.isdigit():
            self.value = max(self.value, int(number))


class Trigger(ManagedObject):
    """
    Base class of PriceTrigger and TimeTrigger.

    Subclasses keep their own active containers and implement _active_map(),
    _insert(), _on_removed() and _complete().

    Attributes:
        task_type (str): 'price' or 'time'; prefix of task ids
        max_inactive_tasks (int): History size; oldest entries are evicted
    """

    task_type = "task"
    task_model: Type[TriggerTask] = TriggerTask

    def __init__(
        self,
        context: "RuntimeContext",
        id_prefix: str = "",
        handlers: Optional[HandlerRegistry] = None,
        task_ids: Optional[TaskCounter] = None,
    ):
        super().__init__(context, id_prefix)
        self._handlers = handlers if handlers is not None else HandlerRegistry(log=self.logger)
        self._task_ids = task_ids if task_ids is not None else TaskCounter()
        self._inactive_tasks: Dict[str, TriggerTask] = {}
        self._listener_id: Optional[str] = None
        self.max_inactive_tasks = context.config.max_inactive_tasks

    # Subclass hooks

    def _active_map(self) -> Dict[str, TriggerTask]:
        raise NotImplementedError

    def _insert(self, task: TriggerTask) -> None:
        raise NotImplementedError

    def _on_removed(self) -> None:
        """Called after tasks left the active set."""
        pass

    def _complete(self, task: TriggerTask) -> None:
        """Called after a successful execution."""
        raise NotImplementedError

    def _subscribe(self) -> str:
        raise NotImplementedError

    async def on_tick(self, event: Any = None) -> None:
        raise NotImplementedError

    # Handlers

    def register_handler(self, task_name: str, handler: Callable, owner: Any) -> None:
        self._handlers.register(task_name, handler, owner)

    def has_handler(self, task_name: str) -> bool:
        return self._handlers.has(task_name)

    # Queries

    def get_active_tasks(self) -> List[TriggerTask]:
        return list(self._active_map().values())

    def get_inactive_tasks(self) -> List[TriggerTask]:
        return list(self._inactive_tasks.values())

    def get_all_tasks(self) -> List[TriggerTask]:
        return self.get_inactive_tasks() + self.get_active_tasks()

    def get_tasks_by_name(self, name: str) -> List[TriggerTask]:
        return [task for task in self.get_active_tasks() if task.name == name]

    def get_task(self, task_id: str) -> Optional[TriggerTask]:
        task = self._active_map().get(task_id)
        if task is None:
            task = self._inactive_tasks.get(task_id)
        return task

    def has_active_task(self, task_id: str) -> bool:
        return task_id in self._active_map()

    # Lifecycle of tasks

    def _next_id(self) -> str:
        return f"{self.task_type}#{self._task_ids.next()}"

    def _now(self) -> int:
        return self.context.host.current_time()

    def _remove_active(self, task: TriggerTask) -> None:
        self._active_map().pop(task.id, None)

    def _deactivate(self, task: TriggerTask) -> None:
        """Move a task from the active set into the history."""
        task.is_active = False
        self._remove_active(task)
        self._inactive_tasks.pop(task.id, None)
        self._inactive_tasks[task.id] = task
        self._on_removed()

    def _clear_inactive(self) -> None:
        while len(self._inactive_tasks) > self.max_inactive_tasks:
            oldest = next(iter(self._inactive_tasks))
            del self._inactive_tasks[oldest]

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel one active task.

        Returns:
            bool: False (with an error log) if no active task has this id
        """
        task = self._active_map().get(task_id)
        if task is None:
            self.logger.error(
                f"{self.__class__.__name__}::cancel_task Task {task_id} not found"
            )
            return False

        self._deactivate(task)
        self._release_if_idle()
        self._clear_inactive()
        self.logger.debug(f"{self.__class__.__name__}::cancel_task Task {task_id} cancelled")
        return True

    def cancel_all(self) -> None:
        for task in self.get_active_tasks():
            self._deactivate(task)
        self._release_if_idle()
        self._clear_inactive()

    # Execution

    async def execute_task(self, task: TriggerTask) -> bool:
        """
        Run a task's callback with its retry budget.

        Returns:
            bool: True on success; False once the retry budget is exhausted

        Raises:
            MissingHandlerError: If neither an inline callback nor a named
                handler exists; the task is deactivated first
        """
        callback = task.callback or self._handlers.get(task.name)
        if callback is None:
            task.error = "There is no registered handler or callback for the task"
            task.is_triggered = True
            self._deactivate(task)
            raise MissingHandlerError(
                f"{self.__class__.__name__}::execute_task There is no registered handler "
                f"or callback for the task {task.name}",
                {"task_id": task.id, "name": task.name},
            )

        while True:
            try:
                result = callback(task.args)
                if inspect.isawaitable(result):
                    result = await result
            except ForcedStopError:
                raise
            except Exception as e:
                self.logger.error(
                    f"{self.__class__.__name__}::execute_task Task {task.id} ({task.name}) "
                    f"failed: {e!r} | args={task.args!r}"
                )
                if not self.context.is_stopped and task.consume_retry():
                    continue

                task.error = str(e)
                task.is_triggered = True
                self._deactivate(task)
                return False

            task.result = result
            task.executed_times += 1
            task.last_executed = self._now()
            task.is_triggered = True
            task.error = None
            self._complete(task)
            return True

    async def _run_due(self, tasks: List[TriggerTask]) -> None:
        for task in tasks:
            # Earlier tasks of the sweep may have cancelled this one (groups).
            if not task.is_active:
                continue
            try:
                await self.execute_task(task)
            except MissingHandlerError as e:
                self.logger.error(str(e))

    # Tick subscription

    def _ensure_subscription(self) -> None:
        if self._listener_id is None:
            self._listener_id = self._subscribe()

    def _release_if_idle(self) -> None:
        if self._listener_id is not None and not self._active_map():
            self.context.events.unsubscribe_by_id(self._listener_id)
            self._listener_id = None

    @property
    def is_subscribed(self) -> bool:
        return self._listener_id is not None

    def _on_destroy(self) -> None:
        # destroy() drops the listener through unsubscribe()
        self._listener_id = None

    # Persistence

    def before_store(self) -> None:
        """
        Prepare for state storage.

        Tasks with inline callbacks cannot be restored and are dropped; the
        history is cleared.
        """
        for task in self.get_active_tasks():
            if task.callback is not None:
                self._remove_active(task)
        self._on_removed()
        self._inactive_tasks.clear()
        self._release_if_idle()

    def after_restore(self) -> None:
        """Cancel restored tasks that still carry an inline callback."""
        for task in self.get_active_tasks():
            if task.callback is not None:
                self.logger.warning(
                    f"{self.__class__.__name__}::after_restore Task {task.id} ({task.name}) "
                    f"has a callback and was cancelled"
                )
                self.cancel_task(task.id)

    def snapshot(self) -> List[Dict[str, Any]]:
        """Active tasks without inline callbacks, as plain dicts."""
        return [
            task.model_dump(mode="json")
            for task in self.get_active_tasks()
            if task.callback is None
        ]

    def restore(self, tasks: List[Dict[str, Any]]) -> int:
        """
        Re-create active tasks from snapshot() output.

        Returns:
            int: Number of restored tasks
        """
        for data in tasks:
            task = self.task_model.model_validate(data)
            task.is_active = True
            self._task_ids.observe(task.id)
            self._insert(task)

        if self._active_map():
            self._ensure_subscription()

        self.logger.info(f"{self.__class__.__name__}::restore {len(tasks)} task(s) restored")
        return len(tasks)
