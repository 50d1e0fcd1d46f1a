"""
Exceptions raised by the fanlog logging package.

Configuration problems (a malformed redaction path, invalid settings) are
fatal and abort logger construction. Call-shape and delivery problems are
reported through the internal diagnostic logger and never reach the code
issuing the log call, unless the logger was built with ``strict_calls``.
"""

from enum import Enum
from typing import Any


class LogErrorCode(str, Enum):
    """Machine-readable error codes for logging failures."""

    INVALID_ARGUMENT = "invalid_argument"
    POLICY_RESOLUTION = "policy_resolution"
    SINK_DELIVERY = "sink_delivery"


class FanlogError(Exception):
    """
    Base exception for all logging errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details (optional)
    """

    def __init__(
        self,
        message: str,
        error_code: LogErrorCode = LogErrorCode.INVALID_ARGUMENT,
        details: dict[str, Any] | None = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for diagnostic logging."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class InvalidArgumentError(FanlogError):
    """Raised when a log call does not have a valid shape."""

    def __init__(
        self,
        message: str = "Invalid log call",
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=LogErrorCode.INVALID_ARGUMENT,
            details=details
        )


class PolicyResolutionError(FanlogError):
    """Raised when a redaction path pattern cannot be parsed."""

    def __init__(
        self,
        message: str = "Malformed redaction path",
        path: str | None = None,
        details: dict[str, Any] | None = None
    ):
        if path is not None:
            details = details or {}
            details["path"] = path

        super().__init__(
            message=message,
            error_code=LogErrorCode.POLICY_RESOLUTION,
            details=details
        )


class SinkDeliveryError(FanlogError):
    """Raised (and reported, never propagated) when a sink fails to deliver."""

    def __init__(
        self,
        message: str = "Sink delivery failed",
        sink: str | None = None,
        details: dict[str, Any] | None = None
    ):
        if sink is not None:
            details = details or {}
            details["sink"] = sink

        super().__init__(
            message=message,
            error_code=LogErrorCode.SINK_DELIVERY,
            details=details
        )
