"""
Domain exceptions for Rankboard.

Raised by leaderboard services for caller mistakes and missing records.
The HTTP layer maps each class to a status code and returns ``message``
verbatim, so messages are written for API clients.

Every error carries ``details`` (structured context for logs), a
``severity`` used to pick the log level, an ``is_retryable`` flag and a
stable ``error_code``. ``ConflictError`` is the only retryable domain
error: it marks a lost first-insert race that the update coordinator
resolves by re-running the transaction.

Infrastructure failures live in ``rankboard.core.exceptions`` and share
the ``RankboardError`` base defined here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # expected caller mistakes
    WARNING = "warning"  # handled, but worth noticing
    ERROR = "error"
    CRITICAL = "critical"


class RankboardError(Exception):
    """Structured error shared by the domain and infrastructure families."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Log/serialization view. Note that it contains a ``message`` key."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, details={self.details!r}, "
            f"severity={self.severity.value!r}, is_retryable={self.is_retryable!r})"
        )


class RankboardDomainException(RankboardError):
    """Base class for errors caused by the request rather than the system."""


class ValidationError(RankboardDomainException):
    """
    Caller input failed validation.

    ``message`` is returned to the client as-is, e.g.
    ``"points must be at least 0, got -5"``.
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            message,
            {"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class NotFoundError(RankboardDomainException):
    """No ledger record for the requested key."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(
        self,
        resource_type: str,
        identifier: Optional[Any] = None,
        message: Optional[str] = None,
    ) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        if message is None:
            message = f"{resource_type} not found"
            if identifier is not None:
                message += f": {identifier}"
        super().__init__(
            message,
            {"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class AuthenticationError(RankboardDomainException):
    """The request carries no usable caller identity."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, reason: str = "Not authorized, no token") -> None:
        self.reason = reason
        super().__init__(reason, {"reason": reason}, error_code="NOT_AUTHENTICATED")


class AuthorizationError(RankboardDomainException):
    """The caller's role may not perform `action`."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, action: str, role: Optional[str] = None) -> None:
        self.action = action
        self.role = role
        super().__init__(
            f"User role '{role or 'unknown'}' is not authorized to access this route",
            {"action": action, "role": role},
            error_code="NOT_AUTHORIZED",
        )


class ConflictError(RankboardDomainException):
    """
    A concurrent writer created the same (event, user) entry first.

    Retrying the operation finds the winner's row and increments it.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = "" if identifier is None else f": {identifier}"
        super().__init__(
            f"Concurrent update conflict on {resource_type}{suffix}",
            {"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_CONFLICT",
        )


def is_transient_error(exc: BaseException) -> bool:
    """True for Rankboard errors flagged retryable; False for anything else."""
    return isinstance(exc, RankboardError) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Severity of a Rankboard error; unknown exceptions count as ERROR."""
    return exc.severity if isinstance(exc, RankboardError) else ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
