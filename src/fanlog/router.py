"""Fan-out of log records to the configured sinks."""

from collections.abc import Iterable

from .exceptions import SinkDeliveryError
from .records import LogRecord
from .sinks import Sink, report_error


class SinkRouter:
    """Forwards each record to every sink whose threshold it meets.

    Sinks are isolated from one another: an exception while handing a record
    to one sink is reported and routing continues with the next.
    """

    def __init__(self, sinks: Iterable[Sink] = ()) -> None:
        self.sinks: list[Sink] = list(sinks)

    def route(self, record: LogRecord) -> None:
        """Forward a record; never raises."""
        for sink in self.sinks:
            try:
                if sink.accepts(record.level):
                    sink.accept(record)
            except Exception as e:
                report_error(SinkDeliveryError(
                    f"Failed to hand record to sink: {e}",
                    sink=getattr(sink, "name", repr(sink)),
                ))

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for every sink to drain; False if any timed out."""
        return all([sink.flush(timeout) for sink in self.sinks])

    def close(self, timeout: float | None = None) -> None:
        """Close every sink."""
        for sink in self.sinks:
            try:
                sink.close(timeout)
            except Exception as e:
                report_error(SinkDeliveryError(
                    f"Failed to close sink: {e}",
                    sink=getattr(sink, "name", repr(sink)),
                ))
