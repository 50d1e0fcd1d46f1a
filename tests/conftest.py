"""Global pytest configuration and fixtures."""
from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest

from fanlog import Logger, LogLevel, LogRecord, Sink, SinkKind, build_logger


class RecordingSink(Sink):
    """Sink that keeps every delivered record in memory."""

    kind = SinkKind.CONSOLE

    def __init__(self, name: str = "recording", **kwargs):
        super().__init__(name=name, **kwargs)
        self.records: list[LogRecord] = []

    def deliver(self, record: LogRecord) -> None:
        self.records.append(record)


class FailingSink(Sink):
    """Sink whose target is always unreachable."""

    kind = SinkKind.DOCUMENT_STORE

    def __init__(self, name: str = "failing", **kwargs):
        super().__init__(name=name, **kwargs)

    def deliver(self, record: LogRecord) -> None:
        raise ConnectionError("document store unreachable")


@pytest.fixture
def recording_sink() -> Generator[RecordingSink, None, None]:
    """A trace-level recording sink, closed after the test."""
    sink = RecordingSink(min_level=LogLevel.TRACE)
    yield sink
    sink.close(timeout=5)


@pytest.fixture
def make_logger() -> Generator:
    """Factory building loggers over explicit sinks; closes them afterwards."""
    created: list[Logger] = []

    def _make_logger(sinks, **options) -> Logger:
        options.setdefault("console", False)
        logger = build_logger(options, sinks=sinks, hostname="test-host")
        created.append(logger)
        return logger

    yield _make_logger

    for logger in created:
        logger.close(timeout=5)


@pytest.fixture
def internal_logger() -> Generator[MagicMock, None, None]:
    """Capture reports sent to the internal diagnostic logger."""
    with patch("fanlog.sinks.internal_logger") as mock_logger:
        yield mock_logger
