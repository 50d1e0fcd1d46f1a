"""fanlog: structured logging with redaction and multi-target routing.

This package provides a structlog-based logger that scrubs sensitive context
fields once and fans every record out to console, file and document-store
sinks, each with its own minimum level.
"""

from .config import (
    LoggerSettings,
    LogLevel,
    RedactionMode,
    RedactionSettings,
    SinkConfig,
    SinkKind,
)
from .console import RichConsoleRenderer
from .exceptions import (
    FanlogError,
    InvalidArgumentError,
    LogErrorCode,
    PolicyResolutionError,
    SinkDeliveryError,
)
from .filters import RedactionFilter, RedactionPolicy, create_redaction_filter, parse_path, redact
from .logger import DefaultLoggerProxy, Logger, build_logger, configure_logging, get_logger
from .records import LogRecord
from .router import SinkRouter
from .sinks import (
    ConsoleSink,
    DocumentStoreDriver,
    DocumentStoreSink,
    FileSink,
    MongoDocumentStoreDriver,
    Sink,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "build_logger",
    "Logger",
    "DefaultLoggerProxy",
    "LoggerSettings",
    "LogLevel",
    "LogRecord",
    "RedactionMode",
    "RedactionSettings",
    "RedactionPolicy",
    "RedactionFilter",
    "create_redaction_filter",
    "parse_path",
    "redact",
    "SinkConfig",
    "SinkKind",
    "SinkRouter",
    "Sink",
    "ConsoleSink",
    "FileSink",
    "DocumentStoreSink",
    "DocumentStoreDriver",
    "MongoDocumentStoreDriver",
    "RichConsoleRenderer",
    "FanlogError",
    "InvalidArgumentError",
    "PolicyResolutionError",
    "SinkDeliveryError",
    "LogErrorCode",
]
