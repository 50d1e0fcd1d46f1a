"""The structured log emitter.

A Logger is a structlog bound logger whose wrapped "logger" is a SinkRouter.
Each call is parsed, gated by the logger-wide level, run through the processor
chain (formatting, redaction, host metadata, timestamp) and frozen into a
LogRecord that the router fans out to the sinks.

Call shapes::

    log.info("plain message")
    log.info("interpolated %s", value)
    log.info({"user": user}, "message with context")
    log.error(exc, "message with a serialised exception")

Child loggers share the parent's sinks and redaction policy and merge their
fixed context into every record, closest binding winning.
"""

import atexit
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from structlog import BoundLoggerBase

from .config import LoggerSettings, LogLevel
from .console import RichConsoleRenderer
from .exceptions import FanlogError, InvalidArgumentError
from .filters import RedactionFilter, RedactionPolicy
from .records import default_processors, serialize_exception
from .router import SinkRouter
from .sinks import DocumentStoreDriver, Sink, build_sink, report_error

_CONTEXT_KEY = "data"


def parse_call(args: tuple[Any, ...]) -> tuple[dict[str, Any] | None, str, tuple[Any, ...]]:
    """Split positional log-call arguments into context, message and format args.

    Raises
    ------
        InvalidArgumentError: If the arguments do not form a valid call

    """
    if not args:
        raise InvalidArgumentError("A log call needs at least a message")

    first, rest = args[0], args[1:]

    if isinstance(first, str):
        return None, first, rest

    if isinstance(first, BaseException):
        if not rest:
            return {"err": serialize_exception(first)}, str(first), ()
        if not isinstance(rest[0], str):
            raise InvalidArgumentError(
                "The message after an exception must be a string",
                details={"message_type": type(rest[0]).__name__},
            )
        return {"err": serialize_exception(first)}, rest[0], rest[1:]

    if isinstance(first, Mapping):
        if not rest or not isinstance(rest[0], str):
            raise InvalidArgumentError(
                "A context mapping must be followed by a string message",
                details={"message_type": type(rest[0]).__name__ if rest else None},
            )
        return dict(first), rest[0], rest[1:]

    raise InvalidArgumentError(
        "Expected a message string, a context mapping or an exception",
        details={"argument_type": type(first).__name__},
    )


class Logger(BoundLoggerBase):
    """Structured logger with redaction and multi-sink routing."""

    def __init__(
        self,
        router: SinkRouter,
        processors: Iterable[Any],
        context: dict[str, Any],
        level: LogLevel = LogLevel.TRACE,
        policy: RedactionPolicy | None = None,
        strict_calls: bool = False,
    ) -> None:
        super().__init__(router, processors, context)
        self._level = LogLevel.parse(level)
        self._policy = policy or RedactionPolicy()
        self._strict_calls = strict_calls

    @property
    def router(self) -> SinkRouter:
        return self._logger

    @property
    def sinks(self) -> list[Sink]:
        return self._logger.sinks

    @property
    def policy(self) -> RedactionPolicy:
        return self._policy

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def context(self) -> dict[str, Any]:
        """The fixed context merged into every record of this logger."""
        return dict(self._context.get(_CONTEXT_KEY, {}))

    def is_enabled_for(self, level: LogLevel | str) -> bool:
        """Whether calls at ``level`` pass the logger-wide threshold."""
        return LogLevel.parse(level).rank >= self._level.rank

    # Emission

    def _invalid(self, error: FanlogError) -> None:
        if self._strict_calls:
            raise error
        report_error(error)

    def log(self, level: LogLevel | str, *args: Any) -> None:
        """Emit a record at ``level``.

        Never raises for malformed calls or failing sinks unless the logger
        was built with ``strict_calls``.
        """
        try:
            level = LogLevel.parse(level)
        except ValueError as e:
            self._invalid(InvalidArgumentError(str(e), details={"level": repr(level)}))
            return

        if level.rank < self._level.rank:
            return

        try:
            context, message, format_args = parse_call(args)
        except InvalidArgumentError as e:
            self._invalid(e)
            return

        data = self._context.get(_CONTEXT_KEY, {})
        if context:
            data = {**data, **context}

        try:
            self._proxy_to_logger(
                "route",
                message,
                level=level,
                positional_args=format_args,
                data=data,
            )
        except InvalidArgumentError as e:
            self._invalid(e)
        except Exception as e:
            self._invalid(InvalidArgumentError(
                f"Failed to build log record: {e}",
                details={"level": level.value, "exception": type(e).__name__},
            ))

    def trace(self, *args: Any) -> None:
        self.log(LogLevel.TRACE, *args)

    def debug(self, *args: Any) -> None:
        self.log(LogLevel.DEBUG, *args)

    def info(self, *args: Any) -> None:
        self.log(LogLevel.INFO, *args)

    def notice(self, *args: Any) -> None:
        self.log(LogLevel.NOTICE, *args)

    def warn(self, *args: Any) -> None:
        self.log(LogLevel.WARN, *args)

    def error(self, *args: Any) -> None:
        self.log(LogLevel.ERROR, *args)

    def fatal(self, *args: Any) -> None:
        self.log(LogLevel.FATAL, *args)

    warning = warn
    critical = fatal

    # Child loggers

    def _derive(self, context: dict[str, Any]) -> "Logger":
        return self.__class__(
            self._logger,
            self._processors,
            {_CONTEXT_KEY: context},
            level=self._level,
            policy=self._policy,
            strict_calls=self._strict_calls,
        )

    def child(self, extra: Mapping[str, Any] | None = None, **kwargs: Any) -> "Logger":
        """Return a logger sharing sinks and policy with extra fixed context.

        Args:
        ----
            extra: Context merged into every record (overrides the parent's keys)
            **kwargs: Additional context, merged after ``extra``

        """
        return self._derive({**self.context, **(extra or {}), **kwargs})

    def bind(self, **new_values: Any) -> "Logger":
        """Keyword form of :meth:`child`."""
        return self.child(new_values)

    def unbind(self, *keys: str) -> "Logger":
        """Return a logger without the given bound keys.

        Raises
        ------
            KeyError: If a key is not bound

        """
        context = self.context
        for key in keys:
            del context[key]
        return self._derive(context)

    def try_unbind(self, *keys: str) -> "Logger":
        """Like :meth:`unbind`, ignoring missing keys."""
        context = self.context
        for key in keys:
            context.pop(key, None)
        return self._derive(context)

    def new(self, **new_values: Any) -> "Logger":
        """Return a logger with only ``new_values`` bound."""
        return self._derive(dict(new_values))

    # Lifecycle

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every sink has delivered its queued records."""
        return self._logger.flush(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Drain and close every sink; children share them, so close once."""
        self._logger.close(timeout)

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _format_error_handler(strict: bool) -> Callable[[str, tuple, Exception], None]:
    """Handle ``%`` arguments that do not fit the message.

    The record is still emitted with the raw message; strict loggers raise
    instead.
    """

    def handle(message: str, args: tuple, error: Exception) -> None:
        failure = InvalidArgumentError(
            f"Message arguments ignored: {error}",
            details={"message": message, "argument_count": len(args)},
        )
        if strict:
            raise failure
        report_error(failure)

    return handle


def build_logger(
    settings: LoggerSettings | Mapping[str, Any] | None = None,
    *,
    sinks: Iterable[Sink] | None = None,
    console: RichConsoleRenderer | None = None,
    driver: DocumentStoreDriver | None = None,
    hostname: str | None = None,
) -> Logger:
    """Build a Logger from settings.

    Args:
    ----
        settings: LoggerSettings, a mapping of options merged over the
            defaults, or None to read the environment
        sinks: Use these sinks instead of the ones described by the settings
        console: Renderer for the console sink
        driver: Driver for the document-store sink
        hostname: Override the reported hostname

    Raises:
    ------
        PolicyResolutionError: If a redaction path is malformed
        pydantic.ValidationError: If the options are invalid

    """
    if settings is None:
        settings = LoggerSettings()
    elif not isinstance(settings, LoggerSettings):
        settings = LoggerSettings.from_options(settings)

    policy = RedactionPolicy.from_settings(settings.redaction)

    if sinks is None:
        sinks = [
            build_sink(config, settings.queue_size, console=console, driver=driver)
            for config in settings.sink_configs()
            if config.enabled
        ]

    return Logger(
        SinkRouter(sinks),
        default_processors(
            RedactionFilter(policy),
            hostname,
            on_format_error=_format_error_handler(settings.strict_calls),
        ),
        {},
        level=settings.level,
        policy=policy,
        strict_calls=settings.strict_calls,
    )


_default_logger: Logger | None = None
_default_lock = threading.Lock()


def _current_default_logger() -> Logger:
    """Return the process-wide default logger, building it from the environment on first use."""
    global _default_logger
    with _default_lock:
        if _default_logger is None:
            _default_logger = build_logger()
        return _default_logger


def _close_default_logger() -> None:
    global _default_logger
    with _default_lock:
        logger, _default_logger = _default_logger, None
    if logger is not None:
        logger.close(timeout=5.0)


atexit.register(_close_default_logger)


class DefaultLoggerProxy:
    """Handle on the default logger that survives reconfiguration.

    Holds only its bound context. Every attribute lookup resolves the default
    logger current at that moment, so module-level loggers obtained before
    :func:`configure_logging` follow the new sinks and settings afterwards.
    """

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        self._bound = dict(context or {})

    def bind_default(self) -> Logger:
        """Return the current default logger with this handle's context bound."""
        logger = _current_default_logger()
        return logger.child(self._bound) if self._bound else logger

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._bound)

    def child(self, extra: Mapping[str, Any] | None = None, **kwargs: Any) -> "DefaultLoggerProxy":
        return self.__class__({**self._bound, **(extra or {}), **kwargs})

    def bind(self, **new_values: Any) -> "DefaultLoggerProxy":
        return self.child(new_values)

    def unbind(self, *keys: str) -> "DefaultLoggerProxy":
        context = self.context
        for key in keys:
            del context[key]
        return self.__class__(context)

    def try_unbind(self, *keys: str) -> "DefaultLoggerProxy":
        context = self.context
        for key in keys:
            context.pop(key, None)
        return self.__class__(context)

    def new(self, **new_values: Any) -> "DefaultLoggerProxy":
        return self.__class__(new_values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.bind_default(), name)

    def __repr__(self) -> str:
        return f"<DefaultLoggerProxy context={self._bound!r}>"


def configure_logging(settings: LoggerSettings | Mapping[str, Any] | None = None, **kwargs: Any) -> Logger:
    """Build the process-wide default logger, replacing any previous one.

    If no settings are provided, they are read from environment variables.
    Handles returned by :func:`get_logger` switch to the new logger; the
    previous logger is closed.

    Args:
    ----
        settings: Logger settings or options mapping
        **kwargs: Passed to :func:`build_logger`

    Returns:
    -------
        The new default logger

    """
    global _default_logger
    logger = build_logger(settings, **kwargs)
    with _default_lock:
        previous, _default_logger = _default_logger, logger
    if previous is not None:
        previous.close()
    return logger


def get_logger(name: str | None = None, **kwargs: Any) -> DefaultLoggerProxy:
    """Get a handle on the default logger, optionally with extra context.

    The handle resolves the default logger on every call, so it can be
    created at import time, before :func:`configure_logging` runs.

    Args:
    ----
        name: Logger name, recorded as ``logger`` in the context
        **kwargs: Additional context to bind

    """
    if name:
        kwargs = {"logger": name, **kwargs}
    return DefaultLoggerProxy(kwargs)
