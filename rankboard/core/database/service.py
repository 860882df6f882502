"""
DatabaseService: the score ledger's engine and session lifecycle.

One async engine per process, created during application startup and
disposed on shutdown. Everything that touches the ledger goes through one
of two context managers:

- ``get_session()``: reads (leaderboard pages, participant lookups,
  aggregations). Nothing is committed.
- ``get_transaction()``: writes. Commits when the block exits normally,
  rolls back and re-raises otherwise. Service code never calls
  ``session.commit()`` itself.

>>> async with DatabaseService.get_transaction() as session:
...     entry = await repository.get_for_key(session, event_id, user_id, for_update=True)
...     entry.score += 10

Retries for transient failures are not handled here; wrap the code that
opens the transaction in ``DatabaseRetryPolicy.execute``.

Pooling
-------
NullPool when ``ENVIRONMENT=testing`` (every test gets fresh connections on
its own event loop), ``AsyncAdaptedQueuePool`` sized from ``Config``
otherwise. On PostgreSQL each session sets ``statement_timeout`` from
``DATABASE_STATEMENT_TIMEOUT_MS``.

SQLite
------
SQLite ignores ``FOR UPDATE``. The service issues ``BEGIN`` itself instead of
leaving it to the driver, which would only open a transaction at the first
write. Reads run under ``BEGIN DEFERRED``; ``get_transaction()`` uses
``BEGIN IMMEDIATE``, taking the database write lock before its first read,
so read-modify-write transactions from separate processes run one at a time.
A blocked writer waits up to ``DATABASE_STATEMENT_TIMEOUT_MS`` and then fails
with ``OperationalError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from rankboard.core.config.config import Config
from rankboard.core.logging.logger import get_logger

logger = get_logger(__name__)

_SQLITE_BEGIN_OPTION = "rankboard_sqlite_begin"


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created from the current configuration."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before `DatabaseService.initialize()`."""


@dataclass(frozen=True)
class _EngineSettings:
    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @classmethod
    def from_config(cls) -> "_EngineSettings":
        url = Config.DATABASE_URL
        if not isinstance(url, str) or not url:
            raise DatabaseInitializationError("DATABASE_URL must be a non-empty string")

        return cls(
            url=url,
            echo=bool(Config.DATABASE_ECHO),
            pool_class=NullPool if Config.is_testing() else AsyncAdaptedQueuePool,
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
            pool_timeout=int(Config.DATABASE_POOL_TIMEOUT),
            statement_timeout_ms=int(Config.DATABASE_STATEMENT_TIMEOUT_MS),
        )

    @property
    def scheme(self) -> str:
        return self.url.split(":", 1)[0]

    @property
    def is_postgres(self) -> bool:
        return self.scheme.startswith("postgresql")

    @property
    def is_sqlite(self) -> bool:
        return self.scheme.startswith("sqlite")

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pool_class is AsyncAdaptedQueuePool:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=self.pool_recycle,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
        if self.is_sqlite:
            # sqlite3 busy timeout, in seconds.
            kwargs["connect_args"] = {"timeout": self.statement_timeout_ms / 1000.0}
        return kwargs


def _install_sqlite_begin(engine: AsyncEngine) -> None:
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _begin(conn: Any) -> None:
        mode = conn.get_execution_options().get(_SQLITE_BEGIN_OPTION, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


class DatabaseService:
    """
    Class-level holder of the ledger engine.

    Public API
    ----------
    - initialize() / shutdown() / is_initialized()
    - create_schema()
    - get_session() / get_transaction()
    - health_check()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[_EngineSettings] = None
    _init_lock: Optional[asyncio.Lock] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @classmethod
    def _lifecycle_lock(cls) -> asyncio.Lock:
        # Created on first use so it binds to the running loop.
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    def _forget_engine(cls) -> None:
        cls._engine = None
        cls._session_factory = None
        cls._settings = None

    @classmethod
    async def initialize(cls) -> None:
        """
        Create the engine and session factory. Safe to call more than once.

        Raises
        ------
        DatabaseInitializationError
            The URL is missing or the driver rejected it.
        """
        async with cls._lifecycle_lock():
            if cls._engine is not None:
                return

            try:
                settings = _EngineSettings.from_config()
                engine = create_async_engine(settings.url, **settings.engine_kwargs())
                if settings.is_sqlite:
                    _install_sqlite_begin(engine)
            except Exception as exc:
                cls._forget_engine()
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            cls._settings = settings
            cls._engine = engine
            cls._session_factory = async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": settings.scheme,
                    "pool_class": settings.pool_class.__name__,
                    "pool_size": settings.pool_size,
                    "statement_timeout_ms": settings.statement_timeout_ms,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine; a no-op when it was never created."""
        async with cls._lifecycle_lock():
            engine = cls._engine
            if engine is None:
                return

            cls._forget_engine()
            await engine.dispose()
            logger.info("DatabaseService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    async def create_schema(cls) -> None:
        """Create the ledger tables that do not exist yet."""
        engine = cls._require_engine()

        # Importing the models package registers every table on Base.metadata.
        import rankboard.database.models  # noqa: F401
        from rankboard.core.database.base import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables)},
        )

    # ========================================================================
    # Health
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """Run ``SELECT 1``. Never raises; False means unreachable or not started."""
        if cls._engine is None:
            logger.warning("Health check on an uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning(
                "Database health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "duration_ms": (time.perf_counter() - start) * 1000.0,
                },
            )
            return False

        logger.debug(
            "Database health check passed",
            extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
        )
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._session_factory is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must run during startup before the ledger is used"
            )
        return cls._engine

    @classmethod
    @asynccontextmanager
    async def _open(cls, *, commit: bool) -> AsyncGenerator[AsyncSession, None]:
        cls._require_engine()
        assert cls._session_factory is not None and cls._settings is not None

        kind = "transaction" if commit else "session"
        start = time.perf_counter()

        async with cls._session_factory() as session:
            if cls._settings.is_postgres:
                await session.execute(
                    text(f"SET LOCAL statement_timeout = {cls._settings.statement_timeout_ms}")
                )
            elif commit and cls._settings.is_sqlite:
                await session.connection(
                    execution_options={_SQLITE_BEGIN_OPTION: "IMMEDIATE"}
                )
            try:
                yield session
                if commit:
                    await session.commit()
            except Exception as exc:
                await session.rollback()
                # Driver errors log at ERROR; domain outcomes at INFO.
                level = logging.ERROR if isinstance(exc, DBAPIError) else logging.INFO
                logger.log(
                    level,
                    f"Database {kind} rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=level >= logging.ERROR,
                )
                raise
            finally:
                logger.debug(
                    f"Database {kind} closed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session for reads; nothing is committed."""
        async with cls._open(commit=False) as session:
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """Atomic write: commit on normal exit, rollback and re-raise on error."""
        async with cls._open(commit=True) as session:
            yield session
