"""Output targets for log records.

Every sink owns a bounded queue drained by a ``logging.handlers.QueueListener``
thread: ``accept`` only enqueues, so a slow or unreachable target never blocks
the caller or the other sinks, and records reach each target in emission
order. Delivery failures are counted and reported, never raised.
"""

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from logging.handlers import QueueListener
from pathlib import Path
from typing import IO, Any, Protocol

import structlog

from .config import LogLevel, SinkConfig, SinkKind
from .console import RichConsoleRenderer
from .exceptions import FanlogError, SinkDeliveryError
from .records import LogRecord

internal_logger = structlog.get_logger("fanlog.internal")


def report_error(error: FanlogError) -> None:
    """Report a non-fatal logging error on the internal diagnostic logger."""
    try:
        internal_logger.warning(error.message, error_code=error.error_code.value, **error.details)
    except Exception:
        # Diagnostics must never take the host application down
        pass


class _DeliveryHandler(logging.Handler):
    """Bridge between the queue listener thread and a Sink."""

    def __init__(self, sink: "Sink") -> None:
        super().__init__(level=logging.NOTSET)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        self.sink._deliver_safely(record.fanlog_record)


class Sink(ABC):
    """A delivery target for log records."""

    kind: SinkKind

    def __init__(
        self,
        name: str | None = None,
        min_level: LogLevel = LogLevel.TRACE,
        enabled: bool = True,
        queue_size: int = 1024,
    ) -> None:
        """Initialize the sink.

        Args:
        ----
            name: Name used in diagnostics (defaults to the sink kind)
            min_level: Records below this level are not delivered
            enabled: Disabled sinks accept nothing
            queue_size: Maximum number of records waiting for delivery

        """
        self.name = name or self.kind.value
        self.min_level = LogLevel.parse(min_level)
        self.enabled = enabled

        self.delivered = 0
        self.failures = 0
        self.dropped = 0

        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._listener = QueueListener(self._queue, _DeliveryHandler(self))
        self._lock = threading.Lock()
        self._started = False
        self._closed = False
        self._abandoned = False

    def accepts(self, level: LogLevel) -> bool:
        """Whether a record of ``level`` passes this sink's threshold."""
        return self.enabled and not self._closed and level.rank >= self.min_level.rank

    def accept(self, record: LogRecord) -> None:
        """Queue a record for asynchronous delivery."""
        if self._closed:
            return
        self._ensure_started()

        wrapped = logging.makeLogRecord({
            "name": f"fanlog.{self.name}",
            "msg": record.message,
            "levelno": record.level.rank,
            "levelname": record.level.value.upper(),
            "fanlog_record": record,
        })
        try:
            self._queue.put_nowait(wrapped)
        except queue.Full:
            with self._lock:
                self.dropped += 1
                dropped = self.dropped
            report_error(SinkDeliveryError(
                "Delivery queue full, record dropped",
                sink=self.name,
                details={"dropped": dropped},
            ))

    @abstractmethod
    def deliver(self, record: LogRecord) -> None:
        """Write one record to the target. Runs on the listener thread."""

    def release(self) -> None:
        """Free target resources after the listener has stopped."""

    def _deliver_safely(self, record: LogRecord) -> None:
        if self._abandoned:
            return
        try:
            self.deliver(record)
        except Exception as e:
            self.failures += 1
            report_error(SinkDeliveryError(
                f"Sink delivery failed: {e}",
                sink=self.name,
                details={"failures": self.failures, "exception": type(e).__name__},
            ))
        else:
            self.delivered += 1

    def _ensure_started(self) -> None:
        if self._started:
            return
        with self._lock:
            if not self._started:
                self._listener.start()
                self._started = True

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued record has been handled.

        Returns
        -------
            False if the timeout expired first

        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float | None = None) -> None:
        """Drain the queue, stop the listener thread and release the target.

        If the queue does not drain within ``timeout`` the pending records are
        abandoned and reported. The listener and target resources are then
        released in the background once the delivery in progress returns.
        """
        if self._closed:
            return
        self._closed = True

        if not self._started:
            self.release()
        elif self.flush(timeout):
            self._listener.stop()
            self.release()
        else:
            self._abandoned = True
            report_error(SinkDeliveryError(
                "Sink did not drain before timeout, pending records abandoned",
                sink=self.name,
                details={"pending": self._queue.qsize()},
            ))
            threading.Thread(
                target=self._stop_and_release, name=f"fanlog-{self.name}-release", daemon=True
            ).start()

    def _stop_and_release(self) -> None:
        self.flush()
        self._listener.stop()
        try:
            self.release()
        except Exception as e:
            report_error(SinkDeliveryError(f"Failed to release sink: {e}", sink=self.name))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} min_level={self.min_level.value} enabled={self.enabled}>"


class ConsoleSink(Sink):
    """Pretty-prints records with Rich."""

    kind = SinkKind.CONSOLE

    def __init__(self, renderer: RichConsoleRenderer | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.renderer = renderer or RichConsoleRenderer()

    def deliver(self, record: LogRecord) -> None:
        self.renderer.render(record)


class FileSink(Sink):
    """Appends one JSON document per line to a file."""

    kind = SinkKind.FILE

    def __init__(self, path: str | Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.path = Path(path)
        self._stream: IO[str] | None = None

    def _open(self) -> IO[str]:
        if self._stream is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self.path, "a", encoding="utf-8")
        return self._stream

    def deliver(self, record: LogRecord) -> None:
        stream = self._open()
        stream.write(record.to_json() + "\n")
        stream.flush()

    def release(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class DocumentStoreDriver(Protocol):
    """Inserts documents into a document store.

    Implementations own connection pooling and retries.
    """

    def insert(self, uri: str, database: str, collection: str, document: dict[str, Any]) -> None:
        """Insert one document."""
        ...

    def close(self) -> None:
        """Release connections."""
        ...


class MongoDocumentStoreDriver:
    """DocumentStoreDriver backed by pymongo, one client per URI."""

    def __init__(self, timeout_ms: int = 5000, **client_options: Any) -> None:
        """Initialize the driver.

        Args:
        ----
            timeout_ms: Server selection and socket timeout per insert
            **client_options: Extra keyword arguments for MongoClient

        """
        self.timeout_ms = timeout_ms
        self.client_options = client_options
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _client(self, uri: str) -> Any:
        with self._lock:
            client = self._clients.get(uri)
            if client is None:
                from pymongo import MongoClient

                client = MongoClient(
                    uri,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.timeout_ms,
                    **self.client_options,
                )
                self._clients[uri] = client
            return client

    def insert(self, uri: str, database: str, collection: str, document: dict[str, Any]) -> None:
        self._client(uri)[database][collection].insert_one(document)

    def close(self) -> None:
        with self._lock:
            clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            client.close()


class DocumentStoreSink(Sink):
    """Inserts each record as a document."""

    kind = SinkKind.DOCUMENT_STORE

    def __init__(
        self,
        uri: str,
        database: str,
        collection: str,
        driver: DocumentStoreDriver | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.uri = uri
        self.database = database
        self.collection = collection
        self.driver = driver or MongoDocumentStoreDriver()

    @staticmethod
    def to_document(record: LogRecord) -> dict[str, Any]:
        """Wire shape with ``time`` as a datetime so the store indexes it as a date."""
        document = record.to_wire()
        try:
            document["time"] = datetime.fromisoformat(record.timestamp.replace("Z", "+00:00"))
        except ValueError:
            pass
        return document

    def deliver(self, record: LogRecord) -> None:
        self.driver.insert(self.uri, self.database, self.collection, self.to_document(record))

    def release(self) -> None:
        self.driver.close()


def build_sink(
    config: SinkConfig,
    queue_size: int = 1024,
    console: RichConsoleRenderer | None = None,
    driver: DocumentStoreDriver | None = None,
) -> Sink:
    """Create the sink described by a SinkConfig.

    Args:
    ----
        config: Resolved target configuration
        queue_size: Delivery queue bound
        console: Renderer for the console sink
        driver: Driver for the document-store sink

    """
    common = {"min_level": config.min_level, "enabled": config.enabled, "queue_size": queue_size}

    if config.kind is SinkKind.CONSOLE:
        return ConsoleSink(renderer=console, **common)
    if config.kind is SinkKind.FILE:
        return FileSink(path=config.destination["path"], **common)
    if config.kind is SinkKind.DOCUMENT_STORE:
        destination = config.destination
        return DocumentStoreSink(
            uri=destination["uri"],
            database=destination["database"],
            collection=destination["collection"],
            driver=driver,
            **common,
        )
    raise ValueError(f"Unknown sink kind: {config.kind}")
