"""
Event Bus System for StrategyKit

This module provides the publish/subscribe core the rest of the toolkit is
built on. Listeners are always methods of a ManagedObject owner, which lets
the bus drop every listener of an object when that object is destroyed.

Listeners of one event run sequentially in subscription order. A failing
listener is logged with its context and never stops the ones after it.
ForcedStopError is the exception: it is re-raised so a force-stopped script
unwinds out of emit instead of running the remaining listeners.
"""

import inspect
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from .errors import ForcedStopError
from .managed import resolve_owner_method


class EventType(str, Enum):
    """
    Built-in events emitted by the script lifecycle.

    Any string is a valid event name; these members name the events the
    toolkit itself emits. Being a str subclass, a member can be passed
    wherever an event name is expected.

    Examples:
        >>> EventType.ON_TICK.value
        'on_tick'
        >>> str(EventType.ON_TICK)
        'ON_TICK'
    """

    ON_INIT = "on_init"
    """Emitted once after the script finished its own initialisation."""

    ON_BEFORE_TICK = "on_before_tick"
    """
    Emitted at the start of every host tick, before the strategy's on_tick.

    Candle buffers listen here so indicators see the current bar.
    """

    ON_TICK = "on_tick"
    """Emitted on every host tick after the strategy's on_tick hook."""

    ON_TIMER = "on_timer"
    """Emitted when the host drives the script by timer instead of ticks."""

    ON_ORDER_CHANGE = "on_order_change"
    """
    Emitted for every order update, for all symbols.

    Symbol-scoped listeners use subscribe_on_order_change instead.
    Payload: Order.
    """

    ON_ARGS_UPDATE = "on_args_update"
    """Emitted when the host pushes new script arguments."""

    ON_REPORT_ACTION = "on_report_action"
    """Emitted when a report button is pressed. Payload: {'action', 'payload'}."""

    ON_BEFORE_STOP = "on_before_stop"
    ON_STOP = "on_stop"
    ON_AFTER_STOP = "on_after_stop"

    def __str__(self) -> str:
        return self.name


EventName = Union[str, EventType]


def event_key(event_name: EventName) -> str:
    """Normalise an event name to its plain string key."""
    if isinstance(event_name, Enum):
        return event_name.value
    return event_name


@dataclass
class Event:
    """
    Event delivered to listeners.

    Attributes:
        name (str): Event name the listener subscribed to
        data (Any): Payload passed to emit()
        timestamp (int): Host time (ms) at emission

    Examples:
        >>> event = Event(name="on_tick", data={"price": 100.0}, timestamp=0)
        >>> event.data["price"]
        100.0
    """

    name: str
    data: Any = None
    timestamp: int = 0

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise TypeError(f"name must be non-empty str, got {self.name!r}")
        self.name = event_key(self.name)

    def __str__(self) -> str:
        return f"Event({self.name} at {self.timestamp})"


@dataclass
class Listener:
    """
    Subscription record.

    Attributes:
        id (str): Listener id returned by subscribe()
        event (str): Event name
        owner (ManagedObject): Object the handler belongs to
        handler (Callable): Bound method invoked on emit
        handler_name (str): Method name on the owner
        owner_name (str): Owner class name
        owner_id (str): Owner id at subscription time
        result (Dict[str, Any]): Last result of the handler
        active (bool): False once the listener has been removed
    """

    id: str
    event: str
    owner: Any
    handler: Callable
    handler_name: str
    owner_name: str
    owner_id: str
    result: Dict[str, Any] = field(default_factory=dict)
    active: bool = True

    def describe(self) -> Dict[str, Any]:
        """Listener context for logs and reports (without the owner object)."""
        return {
            "id": self.id,
            "event": self.event,
            "handler": self.handler_name,
            "owner": self.owner_name,
            "owner_id": self.owner_id,
        }


@dataclass
class TickSchedule:
    """Re-fire schedule of a symbol-scoped tick event."""

    symbol: str
    interval: int
    next_tick: int


class EventBus:
    """
    Named-event publish/subscribe bus with owner-bound listeners.

    Features:
        - Listener validation (named owner methods only)
        - Sequential, ordered delivery with per-listener error isolation
        - Symbol-scoped tick events re-fired at most once per interval
        - Owner-based unsubscription used by ManagedObject.destroy()

    Examples:
        >>> bus = EventBus(clock=host.current_time)
        >>> listener_id = bus.subscribe("on_tick", strategy.on_tick, strategy)
        >>> await bus.emit("on_tick", {"price": 100.0})
        >>> bus.unsubscribe_by_id(listener_id)
        True
    """

    MIN_TICK_INTERVAL = 1000

    def __init__(
        self,
        clock: Callable[..., int],
        default_tick_interval: int = 2000,
        log=None,
    ):
        """
        Initialize the event bus.

        Args:
            clock (Callable): Host clock; called as clock() or clock(symbol),
                returns milliseconds
            default_tick_interval (int): Minimum re-fire interval (ms) of
                symbol-scoped tick events
            log: Logger to use (defaults to the loguru logger)
        """
        self._clock = clock
        self._listeners: Dict[str, List[Listener]] = {}
        self._tick_schedule: Dict[str, TickSchedule] = {}
        self._log = log or logger
        self.default_tick_interval = max(self.MIN_TICK_INTERVAL, default_tick_interval)

    def subscribe(self, event_name: EventName, handler: Callable, owner: Any) -> str:
        """
        Subscribe an owner's method to an event.

        Args:
            event_name: Event to listen to
            handler: Named method of owner
            owner: ManagedObject the handler belongs to

        Returns:
            str: Listener id for unsubscribe_by_id()

        Raises:
            InvalidHandlerError: If the handler is not callable, anonymous,
                not a method of owner, or owner is not a ManagedObject
        """
        key = event_key(event_name)
        method = resolve_owner_method(
            handler, owner, "EventBus::subscribe", {"event_name": key}
        )

        listener = Listener(
            id=uuid.uuid4().hex[:10],
            event=key,
            owner=owner,
            handler=method,
            handler_name=method.__name__,
            owner_name=owner.__class__.__name__,
            owner_id=owner.id,
        )
        self._listeners.setdefault(key, []).append(listener)

        self._log.debug(
            f"EventBus::subscribe A handler for the {key} event has been registered "
            f"(listener {listener.id}, owner {owner.id})"
        )
        return listener.id

    def subscribe_on_tick(
        self,
        handler: Callable,
        owner: Any,
        symbol: str,
        interval: Optional[int] = None,
    ) -> str:
        """
        Subscribe to the rate-limited tick event of a symbol.

        The event fires from emit_on_tick() at most once per interval; the
        interval is floored at default_tick_interval.

        Returns:
            str: Listener id
        """
        key = self.tick_event_name(symbol)
        interval = max(interval or self.default_tick_interval, self.default_tick_interval)

        self._tick_schedule[key] = TickSchedule(
            symbol=symbol,
            interval=interval,
            next_tick=self._clock(symbol) + interval,
        )
        return self.subscribe(key, handler, owner)

    def subscribe_on_order_change(self, handler: Callable, owner: Any, symbol: str) -> str:
        """Subscribe to order updates of one symbol."""
        return self.subscribe(self.order_event_name(symbol), handler, owner)

    @staticmethod
    def tick_event_name(symbol: str) -> str:
        return f"emit_on_tick_{symbol}"

    @staticmethod
    def order_event_name(symbol: str) -> str:
        return f"on_order_change_{symbol}"

    async def emit(self, event_name: EventName, data: Any = None) -> None:
        """
        Emit an event to its listeners.

        Listeners are awaited one after another in subscription order. A
        listener removed while the event is being delivered is skipped.
        Exceptions are logged with the listener's context and do not reach
        the caller, except ForcedStopError which stops the script.
        """
        key = event_key(event_name)
        listeners = self._listeners.get(key)
        if not listeners:
            return

        event = Event(name=key, data=data, timestamp=self._clock())

        for listener in list(listeners):
            if not listener.active:
                continue
            try:
                result = listener.handler(event)
                if inspect.isawaitable(result):
                    result = await result
                listener.result = {
                    "result": result,
                    "updated": self._clock(),
                    "owner_id": listener.owner_id,
                }
            except ForcedStopError:
                raise
            except Exception as e:
                self._log.error(
                    f"EventBus::emit Listener {listener.owner_name}.{listener.handler_name} "
                    f"failed on {key}: {e!r} | listener={listener.describe()} data={data!r}"
                )

    async def emit_on_tick(self) -> None:
        """
        Fire symbol-scoped tick events that are due.

        Called by the host's per-tick driver. An event fires only when the
        symbol's clock reached its next-due time, which is then moved to
        now + interval.
        """
        for key, schedule in list(self._tick_schedule.items()):
            if self._clock(schedule.symbol) < schedule.next_tick:
                continue
            await self.emit(key)
            schedule.next_tick = self._clock(schedule.symbol) + schedule.interval

    async def emit_on_order_change(self, order: Any) -> None:
        await self.emit(self.order_event_name(order.symbol), order)

    def set_default_tick_interval(self, interval: int) -> None:
        self.default_tick_interval = max(self.MIN_TICK_INTERVAL, interval)

    def get_listeners(self, event_name: Optional[EventName] = None) -> List[Listener]:
        if event_name is not None:
            return list(self._listeners.get(event_key(event_name), []))
        return [listener for listeners in self._listeners.values() for listener in listeners]

    def listener_count(self, event_name: Optional[EventName] = None) -> int:
        return len(self.get_listeners(event_name))

    def next_tick_time(self, symbol: str) -> Optional[int]:
        schedule = self._tick_schedule.get(self.tick_event_name(symbol))
        return schedule.next_tick if schedule else None

    def unsubscribe_by_id(self, listener_id: str) -> bool:
        """
        Remove one listener.

        Returns:
            bool: True if the listener was found and removed
        """
        for key, listeners in self._listeners.items():
            for listener in listeners:
                if listener.id != listener_id:
                    continue

                self._remove(key, [listener])
                self._log.debug(
                    f"EventBus::unsubscribe_by_id Listener {listener_id} unsubscribed from event {key}"
                )
                return True

        self._log.error(f"EventBus::unsubscribe_by_id Listener {listener_id} was not found")
        return False

    def unsubscribe_by_object_id(self, object_id: str) -> int:
        """
        Remove every listener owned by an object.

        Returns:
            int: Number of listeners removed
        """
        removed = 0

        for key, listeners in list(self._listeners.items()):
            matches = [listener for listener in listeners if listener.owner_id == object_id]
            if not matches:
                continue

            self._remove(key, matches)
            removed += len(matches)
            self._log.debug(
                f"EventBus::unsubscribe_by_object_id Object {object_id} unsubscribed "
                f"from event {key} ({len(matches)} listener(s))"
            )

        return removed

    def clear(self) -> None:
        for listeners in self._listeners.values():
            for listener in listeners:
                listener.active = False
        self._listeners.clear()
        self._tick_schedule.clear()

    def _remove(self, key: str, removed: List[Listener]) -> None:
        for listener in removed:
            listener.active = False

        remaining = [listener for listener in self._listeners[key] if listener.active]
        if remaining:
            self._listeners[key] = remaining
            return

        del self._listeners[key]
        self._tick_schedule.pop(key, None)
