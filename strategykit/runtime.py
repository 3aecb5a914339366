"""
Runtime context.

One RuntimeContext holds everything a strategy instance shares: the host,
the configuration, the object registry, the event bus, the log journal and
the global services. Components receive the context explicitly instead of
reaching for module-level state, so several runtimes can coexist in one
process (and in one test session).
"""

from typing import Optional

from loguru import logger

from .candles.manager import CandlesBufferManager
from .config import RuntimeConfig
from .core.event_bus import EventBus
from .core.log import LogJournal
from .core.registry import ObjectRegistry, unique_suffix
from .host.base import HostAPI
from .indicators.indicators import Indicators
from .report.report import Report
from .triggers.service import TriggerService


class RuntimeContext:
    """
    Shared state of one strategy runtime.

    Attributes:
        id (str): Runtime id, bound to every log record as extra['runtime']
        host (HostAPI): Injected host primitives
        config (RuntimeConfig): Runtime tunables
        logger: loguru logger bound to this runtime
        registry (ObjectRegistry): Live managed objects
        events (EventBus): Event bus
        journal (LogJournal): Log history and error circuit breaker
        triggers (TriggerService): Global trigger service
        candles (CandlesBufferManager): Candle buffers
        indicators (Indicators): Indicator facade
        report (Report): Report facade
        is_stopped (bool): True once the runtime has been force-stopped

    Examples:
        >>> context = RuntimeContext(SimulatedHost(), RuntimeConfig())
        >>> context.triggers.add_task_by_time("heartbeat", 60_000, callback=bot.heartbeat)
        'time#1'
        >>> context.close()
    """

    def __init__(
        self,
        host: HostAPI,
        config: Optional[RuntimeConfig] = None,
        runtime_id: Optional[str] = None,
    ):
        self.id = runtime_id or f"rt-{unique_suffix(6)}"
        self.host = host
        self.config = config or RuntimeConfig()
        self.logger = logger.bind(runtime=self.id)
        self.is_stopped = False
        self.stop_reason: Optional[str] = None

        self.registry = ObjectRegistry(log=self.logger)
        self.events = EventBus(
            clock=host.current_time,
            default_tick_interval=self.config.default_tick_interval,
            log=self.logger,
        )
        self.journal = LogJournal(self.id, host, self.config, on_trip=self.request_stop)
        self.journal.attach()

        self.triggers = TriggerService(self, "Global")
        self.candles = CandlesBufferManager(self)
        self.indicators = Indicators(self)
        self.report = Report(self)

    def request_stop(self, reason: str) -> None:
        """
        Mark the runtime stopped and ask the host to terminate the script.

        Called from inside the journal sink, so it must not log.
        """
        if self.is_stopped:
            return
        self.is_stopped = True
        self.stop_reason = reason
        self.host.force_stop(reason)

    def close(self) -> None:
        """Destroy the global services, detach the journal and drop listeners."""
        for service in (self.report, self.indicators, self.candles, self.triggers):
            if not service.is_destroyed:
                service.destroy()
        self.journal.detach()
        self.events.clear()
