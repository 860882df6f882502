"""
Infrastructure exceptions for Rankboard.

Engineering failures (configuration, storage, event delivery). API callers
never see these messages; the HTTP layer logs them and answers with a
generic 500. They share ``RankboardError`` and its severity helpers with
the domain family, so log handling treats both the same way.
"""

from __future__ import annotations

from rankboard.modules.shared.exceptions import (
    ErrorSeverity,
    RankboardError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "ConfigurationError",
    "DatabaseError",
    "EventBusError",
    "RankboardInfrastructureException",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]


class RankboardInfrastructureException(RankboardError):
    """Base class for failures of the system rather than the request."""


class ConfigurationError(RankboardInfrastructureException):
    """A configuration key holds an unusable value."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            {"config_key": config_key, "problem": message},
            error_code="CONFIG_ERROR",
        )


def _cause(original_error: BaseException) -> dict:
    return {"error": str(original_error), "error_type": type(original_error).__name__}


class DatabaseError(RankboardInfrastructureException):
    """A ledger storage operation failed; usually worth retrying."""

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: BaseException) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database error during {operation}: {original_error}",
            {"operation": operation, **_cause(original_error)},
            error_code="DATABASE_ERROR",
        )


class EventBusError(RankboardInfrastructureException):
    """Publishing an event failed outright (not a single listener failure)."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self, operation: str, event_type: str, original_error: BaseException
    ) -> None:
        self.operation = operation
        self.event_type = event_type
        self.original_error = original_error
        super().__init__(
            f"Event bus error during {operation} for '{event_type}': {original_error}",
            {"operation": operation, "event_type": event_type, **_cause(original_error)},
            error_code="EVENT_BUS_ERROR",
        )
