"""
Trigger task records.

Tasks are mutable pydantic models: the trigger engine updates their
bookkeeping (executed_times, is_active, error, result, ...) in place while
they move from the active sets to the inactive history.
"""

from enum import Enum
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field


class PriceTriggerDirection(str, Enum):
    """Side of the reference price a price task was created on."""

    UP = "up"
    DOWN = "down"


class TriggerTask(BaseModel):
    """
    Common fields of price and time tasks.

    Attributes:
        id: Task id ('price#<n>' or 'time#<n>')
        name: Task name; also the key of the named handler
        args: Value passed to the handler
        callback: Inline callable; takes priority over the named handler.
            Not serialisable, excluded from dumps
        retry: Remaining retry budget; an int is decremented on every failed
            attempt, True retries indefinitely, False/0 never retries
        executed_times: Successful executions
        is_active: Task is in an active set
        is_triggered: Task fired (successfully or with exhausted retries)
        created_tms: Host time (ms) the task was added at
        last_executed: Host time (ms) of the last successful execution
        error: Message of the last error that deactivated the task
        result: Return value of the last successful execution
    """

    model_config = {"arbitrary_types_allowed": True}

    id: str
    name: str
    type: Literal["price", "time"]
    args: Any = None
    callback: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    retry: Union[bool, int] = False
    executed_times: int = 0
    is_active: bool = True
    is_triggered: bool = False
    created_tms: int = 0
    last_executed: Optional[int] = None
    error: Optional[str] = None
    result: Any = None

    def consume_retry(self) -> bool:
        """
        Use one unit of the retry budget.

        Returns:
            bool: True if another attempt is allowed
        """
        if isinstance(self.retry, bool):
            return self.retry
        if self.retry <= 0:
            return False
        self.retry -= 1
        return True


class PriceTriggerTask(TriggerTask):
    """
    Task fired when the symbol's price crosses trigger_price.

    UP tasks fire once price >= trigger_price, DOWN tasks once
    price <= trigger_price. Tasks sharing a group are cancelled together as
    soon as one of them executes successfully.
    """

    type: Literal["price"] = "price"
    symbol: str
    trigger_price: float
    direction: PriceTriggerDirection
    group: Optional[str] = None


class TimeTriggerTask(TriggerTask):
    """
    Task fired once host time reaches trigger_time.

    With an interval the task stays active after each successful run and is
    rescheduled to now + interval.
    """

    type: Literal["time"] = "time"
    trigger_time: int
    interval: Optional[int] = Field(default=None, gt=0)
