"""
Database subsystem for Rankboard.

Provides the async SQLAlchemy engine, session management and retry policy,
plus the ORM base classes used by model definitions.
"""

from rankboard.core.database.base import Base, TimestampMixin, utc_now
from rankboard.core.database.retry_policy import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from rankboard.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    # Retry
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
