"""
Named-handler registry for trigger tasks.

Tasks that must survive a save/restore cycle cannot carry closures. They
reference a handler by task name instead; the handler is registered once at
startup as a named method of a ManagedObject owner.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ..core.errors import InvalidHandlerError
from ..core.managed import resolve_owner_method


@dataclass
class RegisteredHandler:
    task_name: str
    callback: Callable
    func_name: str
    owner: Any

    @property
    def owner_id(self) -> str:
        return self.owner.id


class HandlerRegistry:
    """
    Task name to bound-method mapping.

    A handler whose owner has been destroyed no longer resolves.

    Examples:
        >>> handlers = HandlerRegistry()
        >>> handlers.register("executeStopLoss", exchange.create_trigger_order_by_task, exchange)
        >>> handlers.has("executeStopLoss")
        True
    """

    def __init__(self, log=None):
        self._handlers: Dict[str, RegisteredHandler] = {}
        self._log = log or logger

    def register(self, task_name: str, handler: Callable, owner: Any) -> None:
        """
        Register the handler for a task name.

        Raises:
            InvalidHandlerError: If the handler fails owner validation or a
                handler for task_name is already registered
        """
        method = resolve_owner_method(
            handler, owner, "HandlerRegistry::register", {"task_name": task_name}
        )

        if task_name in self._handlers:
            raise InvalidHandlerError(
                f"HandlerRegistry::register The handler for the task {task_name} "
                f"is already registered",
                {"task_name": task_name},
            )

        self._handlers[task_name] = RegisteredHandler(
            task_name=task_name,
            callback=method,
            func_name=method.__name__,
            owner=owner,
        )
        self._log.debug(f"HandlerRegistry::register New handler registered for {task_name}")

    def get(self, task_name: str) -> Optional[Callable]:
        registered = self._handlers.get(task_name)
        if registered is None or registered.owner.is_destroyed:
            return None
        return registered.callback

    def has(self, task_name: str) -> bool:
        return task_name in self._handlers

    def unregister(self, task_name: str) -> bool:
        return self._handlers.pop(task_name, None) is not None

    def describe(self) -> List[Dict[str, str]]:
        return [
            {"task_name": h.task_name, "handler": h.func_name, "owner_id": h.owner_id}
            for h in self._handlers.values()
        ]
