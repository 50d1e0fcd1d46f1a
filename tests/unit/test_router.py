"""Tests for sink fan-out."""
from unittest.mock import MagicMock

import pytest

from fanlog import LogLevel, LogRecord, SinkRouter
from tests.conftest import RecordingSink

pytestmark = pytest.mark.unit


def _record(level: LogLevel) -> LogRecord:
    return LogRecord(level=level, timestamp="2025-06-20T10:00:00Z", message=level.value, host="h", pid=1)


class TestSinkRouter:
    """Test threshold routing and isolation."""

    def test_routes_by_rank(self):
        """Test that only sinks with min_level <= level receive the record."""
        info_sink = RecordingSink(name="info", min_level=LogLevel.INFO)
        notice_sink = RecordingSink(name="notice", min_level=LogLevel.NOTICE)
        router = SinkRouter([info_sink, notice_sink])

        for level in LogLevel:
            router.route(_record(level))
        router.flush(timeout=5)
        router.close(timeout=5)

        assert [r.level for r in info_sink.records] == [
            LogLevel.INFO, LogLevel.NOTICE, LogLevel.WARN, LogLevel.ERROR, LogLevel.FATAL,
        ]
        assert [r.level for r in notice_sink.records] == [
            LogLevel.NOTICE, LogLevel.WARN, LogLevel.ERROR, LogLevel.FATAL,
        ]

    def test_exception_in_one_sink_is_isolated(self, internal_logger):
        """Test that a raising sink does not stop routing."""
        broken = MagicMock(name="broken")
        broken.name = "broken"
        broken.accepts.return_value = True
        broken.accept.side_effect = RuntimeError("boom")
        healthy = RecordingSink(name="healthy")
        router = SinkRouter([broken, healthy])

        router.route(_record(LogLevel.ERROR))
        healthy.flush(timeout=5)
        healthy.close(timeout=5)

        assert len(healthy.records) == 1
        internal_logger.warning.assert_called_once()
        assert internal_logger.warning.call_args.kwargs["sink"] == "broken"

    def test_fifo_within_a_sink(self):
        """Test that a sink receives records in emission order."""
        sink = RecordingSink()
        router = SinkRouter([sink])

        for i in range(200):
            router.route(LogRecord(level=LogLevel.INFO, timestamp="t", message=str(i)))
        router.flush(timeout=5)
        router.close(timeout=5)

        assert [r.message for r in sink.records] == [str(i) for i in range(200)]

    def test_empty_router(self):
        """Test routing with no sinks configured."""
        router = SinkRouter()

        router.route(_record(LogLevel.INFO))

        assert router.flush(timeout=1) is True
