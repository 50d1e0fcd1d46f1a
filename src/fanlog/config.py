"""Logger configuration for multi-target structured logging.

This module describes everything that is decided once at startup:
- Severity levels and their numeric ranks
- Redaction policy settings (paths, censor/remove mode, placeholder)
- Output targets (console, file, document store) with per-target thresholds
- Environment-driven settings via pydantic-settings

Caller-supplied options are merged over the defaults, so passing
``{"file": {"enable": True}}`` keeps the default file path.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Severity levels, ordered by rank."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        """Numeric rank used to compare a record against a threshold."""
        return _LEVEL_RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "LogLevel":
        """Convert a label, alias or numeric rank to a LogLevel.

        Raises
        ------
            ValueError: If the value does not name a known level

        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            for level, rank in _LEVEL_RANKS.items():
                if rank == value:
                    return level
            raise ValueError(f"Unknown log level rank: {value}")
        if isinstance(value, str):
            label = value.strip().lower()
            label = _LEVEL_ALIASES.get(label, label)
            try:
                return cls(label)
            except ValueError:
                pass
        raise ValueError(f"Unknown log level: {value!r}")


_LEVEL_RANKS: dict[LogLevel, int] = {
    LogLevel.TRACE: 10,
    LogLevel.DEBUG: 20,
    LogLevel.INFO: 30,
    LogLevel.NOTICE: 35,
    LogLevel.WARN: 40,
    LogLevel.ERROR: 50,
    LogLevel.FATAL: 60,
}

_LEVEL_ALIASES = {
    "warning": "warn",
    "critical": "fatal",
}


class RedactionMode(str, Enum):
    """What happens to a matched field."""

    CENSOR = "censor"
    REMOVE = "remove"


class SinkKind(str, Enum):
    """Output target kinds."""

    CONSOLE = "console"
    FILE = "file"
    DOCUMENT_STORE = "document_store"


def _coerce_level(v: Any) -> Any:
    if v is None or v == "":
        return v
    return LogLevel.parse(v)


class ConsoleTargetOptions(BaseModel):
    """Console output: pretty, colourised, one line per record."""

    enable: bool = Field(default=True, description="Enable console logging")
    min_level: LogLevel = Field(default=LogLevel.TRACE)

    @field_validator("min_level", mode="before")
    @classmethod
    def validate_min_level(cls, v: Any) -> Any:
        """Accept aliases and upper-case labels."""
        return _coerce_level(v)


class FileTargetOptions(BaseModel):
    """File output: one JSON document per line, appended."""

    enable: bool = Field(default=False, description="Enable file logging")
    path: str = Field(default="./logs/app.log", description="File path for storing logs")
    min_level: LogLevel = Field(default=LogLevel.TRACE)

    @field_validator("min_level", mode="before")
    @classmethod
    def validate_min_level(cls, v: Any) -> Any:
        """Accept aliases and upper-case labels."""
        return _coerce_level(v)


class DocumentStoreConnection(BaseModel):
    """Where the document-store sink inserts records."""

    uri: str = Field(default="mongodb://localhost:27017/logs", description="Connection URI")
    database: str = Field(default="logs", description="Database name")
    collection: str = Field(default="log-collection", description="Collection name")


class DocumentStoreTargetOptions(BaseModel):
    """Document-store output (MongoDB compatible)."""

    enable: bool = Field(default=False, description="Enable document-store logging")
    min_level: LogLevel = Field(default=LogLevel.INFO)
    options: DocumentStoreConnection = Field(default_factory=DocumentStoreConnection)

    @field_validator("min_level", mode="before")
    @classmethod
    def validate_min_level(cls, v: Any) -> Any:
        """Accept aliases and upper-case labels."""
        return _coerce_level(v)


class RedactionSettings(BaseModel):
    """Which context fields are sensitive and how they are scrubbed.

    Paths are dot-separated; ``*`` matches any single key one level deep.
    """

    paths: list[str] = Field(
        default_factory=lambda: ["user.address", "user.passport", "user.phone", "*.password"],
        description="Ordered list of field paths to redact",
    )
    mode: RedactionMode = Field(default=RedactionMode.REMOVE)
    placeholder: str = Field(default="[REDACTED]", description="Replacement for censored values")

    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v: Any) -> Any:
        """Allow upper-case mode names."""
        if isinstance(v, str):
            return v.strip().lower()
        return v


@dataclass(frozen=True)
class SinkConfig:
    """Resolved configuration of a single output target."""

    kind: SinkKind
    min_level: LogLevel
    enabled: bool
    destination: dict[str, Any] = field(default_factory=dict)


def _rename_target_aliases(data: dict[str, Any]) -> dict[str, Any]:
    data = dict(data)
    for alias in ("documentStore", "mongo"):
        if alias in data and "document_store" not in data:
            data["document_store"] = data.pop(alias)
    return data


class LoggerSettings(BaseSettings):
    """Configuration for a fanlog Logger.

    This class reads configuration from environment variables with the prefix
    LOG_, nested fields separated by a double underscore. For example:
    - LOG_LEVEL=debug
    - LOG_FILE__ENABLE=true
    - LOG_FILE__PATH=/var/log/app/app.log
    - LOG_DOCUMENT_STORE__OPTIONS__URI=mongodb://db:27017/logs
    - LOG_REDACTION__MODE=censor

    Attributes
    ----------
        level: Logger-wide threshold; calls below it are dropped immediately
        console: Console target options (a bare bool toggles it)
        file: File target options
        document_store: Document-store target options
        redaction: Redaction policy settings
        queue_size: Per-sink delivery queue bound
        strict_calls: Raise InvalidArgumentError to the caller instead of reporting it

    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: LogLevel = Field(default=LogLevel.TRACE, description="Minimum level processed at all")
    console: ConsoleTargetOptions = Field(default_factory=ConsoleTargetOptions)
    file: FileTargetOptions = Field(default_factory=FileTargetOptions)
    document_store: DocumentStoreTargetOptions = Field(default_factory=DocumentStoreTargetOptions)
    redaction: RedactionSettings = Field(default_factory=RedactionSettings)
    queue_size: int = Field(default=1024, ge=1, description="Records buffered per sink")
    strict_calls: bool = Field(default=False, description="Propagate malformed-call errors")

    @model_validator(mode="before")
    @classmethod
    def normalize_target_keys(cls, data: Any) -> Any:
        """Accept ``documentStore`` and ``mongo`` as names for the document store."""
        if isinstance(data, dict):
            return _rename_target_aliases(data)
        return data

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "LoggerSettings":
        """Build settings from caller options merged over defaults and environment."""
        return cls(**_rename_target_aliases(dict(options)))

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v: Any) -> Any:
        """Accept aliases and upper-case labels."""
        return _coerce_level(v)

    @field_validator("console", mode="before")
    @classmethod
    def validate_console(cls, v: Any) -> Any:
        """Allow ``console: true`` as shorthand."""
        if isinstance(v, bool):
            return {"enable": v}
        return v

    def sink_configs(self) -> list[SinkConfig]:
        """Build one SinkConfig per target kind, console first."""
        return [
            SinkConfig(
                kind=SinkKind.CONSOLE,
                min_level=self.console.min_level,
                enabled=self.console.enable,
            ),
            SinkConfig(
                kind=SinkKind.FILE,
                min_level=self.file.min_level,
                enabled=self.file.enable,
                destination={"path": self.file.path},
            ),
            SinkConfig(
                kind=SinkKind.DOCUMENT_STORE,
                min_level=self.document_store.min_level,
                enabled=self.document_store.enable,
                destination=self.document_store.options.model_dump(),
            ),
        ]
