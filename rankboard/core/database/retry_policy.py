"""
Retry wrapper for ledger writes.

`DatabaseRetryPolicy.execute` re-runs an async operation when it fails with
one of the configured exception types, sleeping between attempts:

    delay_ms = min(initial * 2 ** (attempt - 1), max) + uniform jitter

Rankboard errors flagged retryable (`is_transient_error`, e.g. `ConflictError`)
are retried as well. Any other exception propagates on the first attempt. The
default retriable set is SQLAlchemy's `OperationalError`/`DBAPIError`.

Settings come from `DATABASE_RETRY_MAX_ATTEMPTS`,
`DATABASE_RETRY_INITIAL_BACKOFF_MS`, `DATABASE_RETRY_MAX_BACKOFF_MS` and
`DATABASE_RETRY_JITTER_MS`.

The operation must open its own transaction so every attempt starts clean:

>>> async def apply():
...     async with DatabaseService.get_transaction() as session:
...         ...
>>> await policy.execute(apply, operation_name="score.apply_update")
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from rankboard.core.config.config import Config
from rankboard.core.exceptions import is_transient_error
from rankboard.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ExceptionTypes = Tuple[Type[BaseException], ...]

_DEFAULT_RETRIABLE: ExceptionTypes = (OperationalError, DBAPIError)


@dataclass(frozen=True)
class DatabaseRetryConfig:
    """Attempt budget and backoff shape. `max_attempts` counts the first try."""

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: ExceptionTypes = field(default=_DEFAULT_RETRIABLE)

    @classmethod
    def from_config(
        cls, retriable_exceptions: Optional[ExceptionTypes] = None
    ) -> DatabaseRetryConfig:
        return cls(
            max_attempts=max(1, int(Config.DATABASE_RETRY_MAX_ATTEMPTS)),
            initial_backoff_ms=int(Config.DATABASE_RETRY_INITIAL_BACKOFF_MS),
            max_backoff_ms=int(Config.DATABASE_RETRY_MAX_BACKOFF_MS),
            jitter_ms=int(Config.DATABASE_RETRY_JITTER_MS),
            retriable_exceptions=retriable_exceptions or _DEFAULT_RETRIABLE,
        )


class DatabaseRetryPolicy:
    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @classmethod
    def from_config(
        cls, retriable_exceptions: Optional[ExceptionTypes] = None
    ) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config(retriable_exceptions))

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions) or is_transient_error(exc)

    def _compute_backoff_ms(self, attempt: int) -> int:
        cfg = self._config
        delay = min(cfg.initial_backoff_ms * 2 ** max(attempt - 1, 0), cfg.max_backoff_ms)
        if cfg.jitter_ms > 0:
            delay += random.randint(0, cfg.jitter_ms)
        return delay

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Await `operation` until it succeeds or the attempt budget runs out.

        The final failure, or the first non-retriable one, is re-raised
        unchanged.
        """
        fields = {**(context or {}), "db_operation": operation_name}
        limit = max(1, self._config.max_attempts)

        for attempt in range(1, limit + 1):
            try:
                return await operation()
            except Exception as exc:
                if not self._is_retriable(exc):
                    raise
                last_attempt = attempt >= limit
                logger.warning(
                    "Retriable database failure",
                    extra={
                        **fields,
                        "attempt": attempt,
                        "max_attempts": limit,
                        "error_type": type(exc).__name__,
                        "will_retry": not last_attempt,
                    },
                )
                if last_attempt:
                    logger.error(
                        "Giving up on database operation",
                        extra={**fields, "attempts": attempt},
                    )
                    raise

                delay_ms = self._compute_backoff_ms(attempt)
                logger.debug(
                    "Retrying database operation",
                    extra={**fields, "attempt": attempt + 1, "backoff_ms": delay_ms},
                )
                await asyncio.sleep(delay_ms / 1000.0)

        raise AssertionError("unreachable: max_attempts is at least 1")
