"""Log records and the structlog processors that build them.

A record is created once per log call, after redaction, and shared by every
sink. Its wire shape is::

    {"level": "info", "time": "...", "msg": "...", "host": "...", "pid": 123, "data": {...}}

with ``data`` omitted when the call carried no context.
"""

import os
import socket
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

import structlog

from .config import LogLevel

_json_renderer = structlog.processors.JSONRenderer()

_IMMUTABLE_SCALARS = (str, int, float, bytes, type(None), date, time, timedelta, Decimal, UUID, Enum)


def snapshot(value: Any) -> Any:
    """Deep-copy context data into plain, JSON-friendly containers.

    Mappings become dicts with string keys and sequences and sets become
    lists. Immutable scalars are kept as they are; any other object is
    replaced by its ``repr`` so later changes to it cannot leak into a record.
    """
    if isinstance(value, Mapping):
        return {str(key): snapshot(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [snapshot(item) for item in value]
    if isinstance(value, _IMMUTABLE_SCALARS):
        return value
    return repr(value)


@dataclass(frozen=True)
class LogRecord:
    """A single, already redacted log entry.

    The context is snapshotted on construction, so changes the caller makes
    to its own objects after the log call never reach the sinks.
    """

    level: LogLevel
    timestamp: str
    message: str
    context: Mapping[str, Any] | None = None
    host: str = ""
    pid: int = 0

    def __post_init__(self) -> None:
        if self.context is not None:
            object.__setattr__(self, "context", MappingProxyType(snapshot(self.context)))

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-serialisable representation sent to sinks."""
        wire: dict[str, Any] = {
            "level": self.level.value,
            "time": self.timestamp,
            "msg": self.message,
            "host": self.host,
            "pid": self.pid,
        }
        if self.context:
            wire["data"] = snapshot(self.context)
        return wire

    def to_json(self) -> str:
        """Serialise the wire representation to a JSON string."""
        return _json_renderer(None, "", self.to_wire())


def serialize_exception(exc: BaseException) -> dict[str, Any]:
    """Turn an exception into plain data suitable for the record context."""
    return {
        "type": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def add_log_level(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Normalise the ``level`` entry to a LogLevel."""
    event_dict["level"] = LogLevel.parse(event_dict.get("level", LogLevel.INFO))
    return event_dict


class HostMetaAdder:
    """Add ``host`` and ``pid`` to every event.

    The hostname is resolved once; the pid is read per event so forked
    workers report their own.
    """

    def __init__(self, hostname: str | None = None) -> None:
        self.hostname = hostname or socket.gethostname()

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict["host"] = self.hostname
        event_dict["pid"] = os.getpid()
        return event_dict


def drop_empty_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Remove the ``data`` entry when there is no context to report."""
    if not event_dict.get("data"):
        event_dict.pop("data", None)
    return event_dict


def build_record(logger: Any, method_name: str, event_dict: dict[str, Any]) -> tuple[tuple[LogRecord], dict]:
    """Final processor: freeze the event dict into a LogRecord.

    Returns the ``(args, kwargs)`` tuple structlog passes on to the wrapped
    router.
    """
    record = LogRecord(
        level=event_dict["level"],
        timestamp=event_dict["time"],
        message=event_dict["msg"],
        context=event_dict.get("data"),
        host=event_dict.get("host", ""),
        pid=event_dict.get("pid", 0),
    )
    return (record,), {}


class MessageFormatter(structlog.stdlib.PositionalArgumentsFormatter):
    """``%``-interpolate positional arguments into the message.

    Arguments that do not match the message's placeholders are ignored and
    the raw message is kept; ``on_error`` is told about the mismatch.
    """

    def __init__(self, on_error: Callable[[str, tuple, Exception], None] | None = None) -> None:
        super().__init__()
        self.on_error = on_error

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        try:
            return super().__call__(logger, method_name, event_dict)
        except (TypeError, ValueError, KeyError) as e:
            args = event_dict.pop("positional_args", ())
            if self.on_error is not None:
                self.on_error(event_dict["event"], args, e)
            return event_dict


def default_processors(
    redaction_filter: Any,
    hostname: str | None = None,
    on_format_error: Callable[[str, tuple, Exception], None] | None = None,
) -> list:
    """Create the processor chain turning a call into a LogRecord.

    Redaction runs exactly once, before the record exists, so every sink sees
    the same scrubbed context.
    """
    return [
        add_log_level,
        MessageFormatter(on_format_error),
        redaction_filter,
        HostMetaAdder(hostname),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="time"),
        structlog.processors.EventRenamer("msg"),
        drop_empty_context,
        build_record,
    ]
