"""Tests for console, file and document-store sinks."""
import io
import json
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from fanlog import (
    ConsoleSink,
    DocumentStoreSink,
    FileSink,
    LoggerSettings,
    LogLevel,
    LogRecord,
    MongoDocumentStoreDriver,
    RichConsoleRenderer,
    SinkKind,
)
from fanlog.sinks import build_sink
from tests.conftest import RecordingSink

pytestmark = pytest.mark.unit


def _record(message: str = "m", level: LogLevel = LogLevel.INFO, context=None) -> LogRecord:
    return LogRecord(
        level=level,
        timestamp="2025-06-20T10:00:00.123456Z",
        message=message,
        context=context,
        host="test-host",
        pid=4242,
    )


class TestConsoleSink:
    """Test Rich console rendering."""

    def _renderer(self, **kwargs) -> tuple[RichConsoleRenderer, io.StringIO]:
        buffer = io.StringIO()
        console = Console(file=buffer, force_terminal=False, color_system=None, width=500)
        return RichConsoleRenderer(console=console, **kwargs), buffer

    def test_single_line_output(self):
        """Test level-first single line output with context."""
        renderer, buffer = self._renderer()
        sink = ConsoleSink(renderer=renderer)

        sink.accept(_record("USER", context={"user": {"id": "johndoe"}}))
        sink.close(timeout=5)

        output = buffer.getvalue()
        assert output.startswith("INFO")
        assert "(4242 on test-host)" in output
        assert ': USER {"user": {"id": "johndoe"}}' in output
        assert output.count("\n") == 1

    def test_multi_line_output(self):
        """Test indented context rendering."""
        renderer, buffer = self._renderer(single_line=False, show_timestamp=False, show_host=False)

        renderer.render(_record("USER", context={"user": {"id": "johndoe"}, "n": 1}))

        lines = buffer.getvalue().splitlines()
        assert lines[0] == "INFO  : USER"
        assert lines[1] == "  user:"
        assert lines[2] == "    id: johndoe"
        assert lines[3] == "  n: 1"

    def test_translate_time(self):
        """Test conversion of UTC timestamps to local standard time."""
        translated = RichConsoleRenderer.translate_time("2025-06-20T10:00:00.123456Z")

        assert len(translated.split(" ")) == 3
        assert translated.split(" ")[1].endswith(".123")
        assert RichConsoleRenderer.translate_time("not-a-time") == "not-a-time"


class TestFileSink:
    """Test JSON-lines file output."""

    def test_appends_json_lines(self):
        """Test that records are appended one JSON document per line."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "nested" / "logs" / "app.log"
            path.parent.mkdir(parents=True)
            path.write_text('{"existing": true}\n')
            sink = FileSink(path=path)

            sink.accept(_record("first", context={"a": 1}))
            sink.accept(_record("second"))
            sink.close(timeout=5)

            lines = path.read_text().splitlines()
            assert json.loads(lines[0]) == {"existing": True}
            assert json.loads(lines[1]) == {
                "level": "info",
                "time": "2025-06-20T10:00:00.123456Z",
                "msg": "first",
                "host": "test-host",
                "pid": 4242,
                "data": {"a": 1},
            }
            assert "data" not in json.loads(lines[2])

    def test_creates_parent_directories(self):
        """Test that missing directories are created on first write."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "a" / "b" / "app.log"
            sink = FileSink(path=str(path))

            sink.accept(_record())
            sink.close(timeout=5)

            assert path.exists()
            assert sink.delivered == 1


class TestDocumentStoreSink:
    """Test document-store delivery through a driver."""

    def test_inserts_through_driver(self):
        """Test the insert call and the stored document."""
        driver = MagicMock()
        sink = DocumentStoreSink(
            uri="mongodb://db:27017/logs", database="logs", collection="log-collection", driver=driver
        )

        sink.accept(_record("stored", context={"a": 1}))
        sink.close(timeout=5)

        uri, database, collection, document = driver.insert.call_args.args
        assert (uri, database, collection) == ("mongodb://db:27017/logs", "logs", "log-collection")
        assert document["msg"] == "stored"
        assert document["data"] == {"a": 1}
        assert isinstance(document["time"], datetime)
        driver.close.assert_called_once()

    def test_collection_comes_from_collection_option(self):
        """Test that the collection is not populated from the URI."""
        settings = LoggerSettings.from_options({
            "console": False,
            "mongo": {
                "enable": True,
                "options": {"uri": "mongodb://db/logs", "database": "logs", "collection": "audit"},
            },
        })
        [config] = [c for c in settings.sink_configs() if c.kind is SinkKind.DOCUMENT_STORE]

        sink = build_sink(config, driver=MagicMock())

        assert sink.collection == "audit"
        assert sink.uri == "mongodb://db/logs"
        assert sink.min_level is LogLevel.INFO
        sink.close()

    def test_unreachable_store_is_counted(self, internal_logger):
        """Test that driver errors are reported, not raised."""
        driver = MagicMock()
        driver.insert.side_effect = ConnectionError("no primary")
        sink = DocumentStoreSink(uri="u", database="d", collection="c", driver=driver)

        sink.accept(_record())
        sink.accept(_record())
        sink.close(timeout=5)

        assert sink.failures == 2
        assert sink.delivered == 0
        call = internal_logger.warning.call_args
        assert call.kwargs["error_code"] == "sink_delivery"
        assert call.kwargs["exception"] == "ConnectionError"


class TestMongoDocumentStoreDriver:
    """Test the pymongo-backed driver."""

    @patch("pymongo.MongoClient")
    def test_client_cached_per_uri(self, mock_client_cls):
        """Test client reuse, insert and close."""
        driver = MongoDocumentStoreDriver(timeout_ms=1000)

        driver.insert("mongodb://a", "logs", "c1", {"msg": "1"})
        driver.insert("mongodb://a", "logs", "c2", {"msg": "2"})
        driver.insert("mongodb://b", "logs", "c1", {"msg": "3"})

        assert mock_client_cls.call_count == 2
        mock_client_cls.assert_any_call(
            "mongodb://a", serverSelectionTimeoutMS=1000, socketTimeoutMS=1000
        )
        client = mock_client_cls.return_value
        client.__getitem__.return_value.__getitem__.return_value.insert_one.assert_called_with({"msg": "3"})

        driver.close()
        assert client.close.call_count == 2


class TestSinkLifecycle:
    """Test queueing, thresholds and shutdown."""

    def test_accepts_threshold(self):
        """Test the per-sink level comparison."""
        sink = RecordingSink(min_level="warn")

        assert sink.accepts(LogLevel.INFO) is False
        assert sink.accepts(LogLevel.WARN) is True
        assert sink.accepts(LogLevel.FATAL) is True

    def test_full_queue_drops(self, internal_logger):
        """Test that a blocked sink drops records instead of blocking the caller."""
        release = threading.Event()

        class BlockedSink(RecordingSink):
            def deliver(self, record):
                release.wait(5)
                super().deliver(record)

        sink = BlockedSink(queue_size=1)
        for i in range(5):
            sink.accept(_record(str(i)))

        assert sink.dropped >= 3
        release.set()
        sink.close(timeout=5)

        assert len(sink.records) + sink.dropped == 5
        assert internal_logger.warning.call_args_list[0].kwargs["error_code"] == "sink_delivery"

    def test_close_is_idempotent(self):
        """Test that closed sinks ignore further records."""
        sink = RecordingSink()
        sink.accept(_record("before"))
        sink.close(timeout=5)
        sink.close(timeout=5)

        sink.accept(_record("after"))

        assert [r.message for r in sink.records] == ["before"]
        assert sink.accepts(LogLevel.FATAL) is False

    def test_close_timeout_abandons_pending(self, internal_logger):
        """Test that a stuck sink does not hang shutdown."""
        release = threading.Event()

        class StuckSink(RecordingSink):
            def deliver(self, record):
                release.wait(5)

        sink = StuckSink()
        sink.accept(_record())
        sink.accept(_record())

        sink.close(timeout=0.05)
        release.set()

        message = internal_logger.warning.call_args.args[0]
        assert "did not drain" in message

    def test_abandoned_sink_is_released_once_delivery_returns(self, internal_logger):
        """Test that a timed-out close still frees the target later."""
        gate = threading.Event()
        released = threading.Event()

        class StuckSink(RecordingSink):
            def deliver(self, record):
                gate.wait(5)
                super().deliver(record)

            def release(self):
                released.set()

        sink = StuckSink()
        for i in range(3):
            sink.accept(_record(str(i)))

        sink.close(timeout=0.05)
        assert not released.is_set()
        gate.set()

        assert released.wait(5)
        assert len(sink.records) <= 1

    def test_dropped_count_with_concurrent_producers(self, internal_logger):
        """Test that every record is either delivered or counted as dropped."""
        release = threading.Event()

        class BlockedSink(RecordingSink):
            def deliver(self, record):
                release.wait(5)
                super().deliver(record)

        sink = BlockedSink(queue_size=2)

        def produce():
            for i in range(250):
                sink.accept(_record(str(i)))

        producers = [threading.Thread(target=produce) for _ in range(4)]
        for producer in producers:
            producer.start()
        for producer in producers:
            producer.join()
        release.set()
        sink.close(timeout=5)

        assert len(sink.records) + sink.dropped == 1000
        assert sink.dropped >= 990
