"""
Logging journal and error circuit breaker.

Components log through loguru. Each runtime binds its own logger
(logger.bind(runtime=...)) and attaches one LogJournal sink filtered on that
binding. The journal keeps the latest records per level for the report
tables and counts errors: too many of them trip the circuit breaker, which
force-stops the whole script.
"""

import sys
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from ..utils.time import time_to_string


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[runtime]}</cyan> | {message}"
)


def setup_logging(level: str = "INFO", sink: Any = sys.stderr) -> int:
    """
    Replace loguru's default handler with a console sink for scripts.

    Args:
        level: Minimum level written to the sink
        sink: Destination (stderr by default)

    Returns:
        int: Loguru handler id
    """
    logger.remove()
    logger.configure(extra={"runtime": "-"})
    return logger.add(sink, level=level.upper(), format=CONSOLE_FORMAT)


class LogJournal:
    """
    Loguru sink keeping bounded per-level history for one runtime.

    Error accounting:
        - Tester mode: more than max_errors_tester errors trip the breaker
        - Live mode: more than max_errors_live errors within error_window
          (host milliseconds) trip the breaker

    Tripping resets the counter and calls on_trip(reason). The sink must not
    log itself, so on_trip implementations must not log either.

    Examples:
        >>> journal = LogJournal("rt-1", host, config, on_trip=context.request_stop)
        >>> journal.attach()
        >>> logger.bind(runtime="rt-1").error("Order rejected")
        >>> journal.get_logs("ERROR")[0]["message"]
        'Order rejected'
    """

    def __init__(
        self,
        runtime_id: str,
        host: Any,
        config: Any,
        on_trip: Optional[Callable[[str], None]] = None,
    ):
        self.runtime_id = runtime_id
        self._host = host
        self._config = config
        self._on_trip = on_trip
        self._records: Dict[str, Deque[Dict[str, Any]]] = {}
        self._handler_id: Optional[int] = None
        self._error_count = 0
        self._window_started = 0
        self.total_errors = 0

    def attach(self) -> None:
        if self._handler_id is None:
            self._handler_id = logger.add(
                self.sink, level="DEBUG", filter=self._accepts, format="{message}"
            )

    def detach(self) -> None:
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None

    @property
    def is_attached(self) -> bool:
        return self._handler_id is not None

    @property
    def error_count(self) -> int:
        return self._error_count

    def _accepts(self, record: Dict[str, Any]) -> bool:
        return record["extra"].get("runtime") == self.runtime_id

    def sink(self, message: Any) -> None:
        record = message.record
        level = record["level"].name

        bucket = self._records.get(level)
        if bucket is None:
            bucket = self._records[level] = deque(maxlen=self._config.log_max_messages)

        bucket.append({
            "date": time_to_string(self._host.current_time()),
            "level": level,
            "message": record["message"],
            "function": record["function"],
            "module": record["name"],
        })

        if record["level"].no >= logger.level("ERROR").no:
            self._count_error()

    def _count_error(self) -> None:
        now = self._host.current_time()
        self.total_errors += 1

        if self._host.is_tester():
            limit = self._config.max_errors_tester
        else:
            limit = self._config.max_errors_live
            if now - self._window_started > self._config.error_window:
                self._error_count = 0
                self._window_started = now

        self._error_count += 1
        if self._error_count <= limit:
            return

        count = self._error_count
        self._error_count = 0
        if self._on_trip:
            self._on_trip(f"Too many errors count={count}")

    def get_logs(self, level: str) -> List[Dict[str, Any]]:
        return list(self._records.get(level.upper(), []))

    def clear(self) -> None:
        self._records.clear()
        self._error_count = 0
