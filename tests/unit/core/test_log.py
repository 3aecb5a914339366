"""
Unit tests for the log journal and the error circuit breaker.

Tests cover:
- Per-runtime filtering and bounded per-level history
- Tester-mode error limit
- Live-mode error window
- Console setup
"""

import io

from loguru import logger

from strategykit.config import RuntimeConfig
from strategykit.core.log import LogJournal, setup_logging
from strategykit.host.simulated import SimulatedHost
from strategykit.runtime import RuntimeContext


class TestLogJournal:
    """Test record collection."""

    def test_journal_keeps_latest_records_per_level(self, host):
        """Test that history is bounded by log_max_messages."""
        journal = LogJournal("rt-journal", host, RuntimeConfig(log_max_messages=3))
        journal.attach()
        try:
            bound = logger.bind(runtime="rt-journal")
            for i in range(5):
                bound.info(f"message {i}")
            bound.warning("careful")
        finally:
            journal.detach()

        infos = journal.get_logs("info")
        assert [record["message"] for record in infos] == ["message 2", "message 3", "message 4"]
        assert journal.get_logs("WARNING")[0]["level"] == "WARNING"
        assert journal.get_logs("ERROR") == []

    def test_journal_ignores_other_runtimes(self, host):
        """Test that records bound to another runtime are not collected."""
        journal = LogJournal("rt-mine", host, RuntimeConfig())
        journal.attach()
        try:
            logger.bind(runtime="rt-other").error("not mine")
            logger.info("unbound")
        finally:
            journal.detach()

        assert journal.get_logs("ERROR") == []
        assert journal.get_logs("INFO") == []
        assert journal.total_errors == 0

    def test_attach_is_idempotent(self, host):
        journal = LogJournal("rt-twice", host, RuntimeConfig())
        journal.attach()
        journal.attach()
        try:
            logger.bind(runtime="rt-twice").info("once")
        finally:
            journal.detach()

        assert len(journal.get_logs("INFO")) == 1
        assert not journal.is_attached

    def test_record_has_host_date(self, host):
        journal = LogJournal("rt-date", host, RuntimeConfig())
        journal.attach()
        try:
            logger.bind(runtime="rt-date").info("dated")
        finally:
            journal.detach()

        record = journal.get_logs("INFO")[0]
        assert record["date"] == "2023-11-14 22:13:20"
        assert record["function"] == "test_record_has_host_date"


class TestCircuitBreaker:
    """Test error accounting and forced stop."""

    def test_tester_mode_trips_after_limit(self, host):
        """Test that exceeding max_errors_tester force-stops the runtime."""
        context = RuntimeContext(host, RuntimeConfig(max_errors_tester=3))
        try:
            for i in range(3):
                context.logger.error(f"error {i}")
            assert not context.is_stopped

            context.logger.error("one too many")

            assert context.is_stopped
            assert host.stopped
            assert host.stop_reason == "Too many errors count=4"
            assert context.journal.error_count == 0
        finally:
            context.close()

    def test_live_mode_counts_within_window(self):
        """Test that live-mode errors outside the window are forgotten."""
        host = SimulatedHost(start_time=1_000_000, tester=False)
        config = RuntimeConfig(max_errors_live=2, error_window=60_000)
        context = RuntimeContext(host, config)
        try:
            context.logger.error("first")
            context.logger.error("second")
            host.advance(61_000)
            context.logger.error("third")
            context.logger.error("fourth")
            assert not context.is_stopped

            context.logger.error("fifth")

            assert context.is_stopped
            assert context.stop_reason == "Too many errors count=3"
        finally:
            context.close()

    def test_critical_counts_as_error(self, host):
        context = RuntimeContext(host, RuntimeConfig(max_errors_tester=1))
        try:
            context.logger.critical("boom")
            context.logger.critical("boom again")

            assert context.is_stopped
            assert context.journal.total_errors == 2
        finally:
            context.close()


class TestSetupLogging:
    def test_setup_logging_writes_runtime_id(self):
        """Test that the console sink shows the runtime binding and level filter."""
        stream = io.StringIO()
        handler_id = setup_logging("warning", sink=stream)
        try:
            logger.bind(runtime="rt-console").warning("visible")
            logger.bind(runtime="rt-console").info("hidden")
        finally:
            logger.remove(handler_id)

        output = stream.getvalue()
        assert "rt-console | visible" in output
        assert "hidden" not in output
