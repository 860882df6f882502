"""
Shared domain foundations for Rankboard modules.

- BaseService: collaborators (config, event bus, logger) and logging helpers
- BaseRepository: typed async data access
- Domain exceptions: caller-facing errors mapped to HTTP statuses
"""

from rankboard.modules.shared.base_repository import BaseRepository
from rankboard.modules.shared.base_service import BaseService
from rankboard.modules.shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ErrorSeverity,
    NotFoundError,
    RankboardDomainException,
    RankboardError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "ErrorSeverity",
    "NotFoundError",
    "RankboardDomainException",
    "RankboardError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
