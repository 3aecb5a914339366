"""
Managed objects: identity, ownership and transitive destruction.

Every component that subscribes to events or registers trigger handlers is a
ManagedObject. Its id is unique within the runtime registry and is what the
event bus uses to drop all of its listeners when it is destroyed.
"""

from typing import TYPE_CHECKING, Any, Callable, List, TypeVar

from .errors import InvalidHandlerError
from .registry import unique_suffix

if TYPE_CHECKING:
    from ..runtime import RuntimeContext


T = TypeVar("T", bound="ManagedObject")


def resolve_owner_method(handler: Callable, owner: Any, where: str, context: dict) -> Callable:
    """
    Resolve a handler to the bound method of its owner.

    The handler must be a named callable and the owner must be a
    ManagedObject exposing a method with that name. Anonymous callables
    (lambdas, functools.partial objects) are rejected because owner-based
    unsubscription has to find them again through the owner.

    Args:
        handler: Method passed by the caller
        owner: Object the handler belongs to
        where: Caller name used in error messages
        context: Extra data attached to raised errors

    Returns:
        Callable: The owner's bound method

    Raises:
        InvalidHandlerError: If any of the checks above fails
    """
    if not callable(handler):
        raise InvalidHandlerError(f"{where} handler should be a function", context)

    name = getattr(handler, "__name__", None)
    if not name or name == "<lambda>":
        raise InvalidHandlerError(f"{where} Anonymous functions are not supported", context)

    if not isinstance(owner, ManagedObject):
        raise InvalidHandlerError(
            f"{where} The owner must be an instance of the ManagedObject class", context
        )

    method = getattr(owner, name, None)
    if method is None or not callable(method):
        raise InvalidHandlerError(
            f"{where} {name} should be a method of {owner.__class__.__name__}", context
        )

    return method


class ManagedObject:
    """
    Base class for objects living inside a runtime context.

    Ownership is explicit: a parent calls own(child) for every component it
    creates, and destroy() walks that tree. Each object is destroyed exactly
    once; a second destroy() is a logged no-op.

    Attributes:
        context (RuntimeContext): Runtime the object belongs to
        created (int): Host time (ms) the object was created at

    Examples:
        >>> class Basket(ManagedObject):
        ...     async def on_tick(self, event):
        ...         pass
        >>> basket = Basket(context, id_prefix="BTC")
        >>> basket.subscribe("on_tick", basket.on_tick)
        >>> basket.destroy()  # drops the listener as well
    """

    def __init__(self, context: "RuntimeContext", id_prefix: str = ""):
        self.context = context
        self.logger = context.logger
        self._id = ""
        self._is_destroyed = False
        self._owned: List["ManagedObject"] = []
        self.created = context.host.current_time()

        self.id = f"{id_prefix}_{self.__class__.__name__}#{unique_suffix(2)}"
        self.logger.debug(f"ManagedObject::__init__ Object created with id {self.id}")

    @property
    def id(self) -> str:
        return self._id

    @id.setter
    def id(self, value: str) -> None:
        # Listeners keep the owner id they were subscribed with, so renaming
        # an object with subscriptions orphans them.
        if value == self._id:
            return

        registry = self.context.registry
        if self._id:
            self.logger.warning(f"ManagedObject::id ID has been changed {self._id} -> {value}")
            registry.unregister(self)

        self._id = registry.register(self, value)

    @property
    def is_destroyed(self) -> bool:
        return self._is_destroyed

    def own(self, child: T) -> T:
        """Declare ownership of a child component and return it."""
        if child is not self and child not in self._owned:
            self._owned.append(child)
        return child

    def disown(self, child: "ManagedObject") -> None:
        if child in self._owned:
            self._owned.remove(child)

    @property
    def owned(self) -> List["ManagedObject"]:
        return list(self._owned)

    def subscribe(self, event_name: Any, handler: Callable) -> str:
        """Subscribe one of this object's methods to a bus event."""
        return self.context.events.subscribe(event_name, handler, self)

    def unsubscribe(self) -> int:
        """Drop every listener owned by this object."""
        return self.context.events.unsubscribe_by_object_id(self._id)

    def _on_destroy(self) -> None:
        """Hook for subclasses; runs before children are destroyed."""
        pass

    def destroy(self) -> None:
        if self._is_destroyed:
            self.logger.warning(f"ManagedObject::destroy Object {self._id} is already destroyed")
            return

        self.logger.debug(
            f"ManagedObject::destroy Object destroyed with id {self._id} "
            f"{self.__class__.__name__}"
        )

        self._is_destroyed = True
        self._on_destroy()
        self.context.registry.unregister(self)
        self.unsubscribe()

        for child in self._owned:
            if child.is_destroyed:
                self.logger.warning(f"ManagedObject::destroy Object {child.id} is already destroyed")
                continue
            child.destroy()

    def __repr__(self) -> str:
        state = "destroyed" if self._is_destroyed else "live"
        return f"<{self.__class__.__name__} id='{self._id}' {state}>"
