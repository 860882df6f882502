"""
Structured, non-blocking logging for Rankboard.

Every record is enriched with the request scope it was emitted in (user,
event, route, request/correlation id, component, operation) and then handed
to a background listener thread through a bounded queue, so score updates
and socket fan-out never wait on console or file I/O.

Sinks
-----
- Console: JSON in production (or when LOG_JSON=true), otherwise
  human-readable text, colored on a TTY.
- ``<LOGS_DIR>/rankboard_daily.json.log``: JSON, rotated at UTC midnight.

Request scope
-------------
Scope lives in a ContextVar, so concurrent requests and socket sessions
never see each other's fields. Bind it with ``LogContext`` (sync or async
``with``) or ``set_log_context()``; fields passed explicitly through
``extra=`` always win over the bound scope.

>>> logger = get_logger(__name__)
>>> async with LogContext(user_id="u-1", event_id="hack-1", route="PUT /score"):
...     logger.info("score updated", extra={"points": 10})

The subsystem configures itself on import from ``Config``.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from rankboard.core.config.config import Config

_request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Fields every record carries once ContextFilter has run.
SCOPE_FIELDS = (
    "user_id",
    "event_id",
    "route",
    "correlation_id",
    "request_id",
    "component",
    "operation",
)
_UNSET = "N/A"

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DAILY_FILE = "rankboard_daily.json.log"
_INIT_FLAG = "_rankboard_logging_initialized"

# Chatty third-party loggers and the level they are capped at.
_QUIET_LOGGERS = {
    "asyncio": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


@dataclass(frozen=True)
class _Settings:
    level: int
    json_console: bool
    colors: bool
    logs_dir: Path
    queue_size: int
    retention_days: int

    @classmethod
    def from_config(cls) -> "_Settings":
        production = Config.is_production()
        json_console = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        return cls(
            level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
            json_console=json_console,
            colors=not json_console and sys.stdout.isatty(),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
            queue_size=int(Config.LOG_QUEUE_SIZE),
            retention_days=int(Config.LOG_RETENTION_DAYS),
        )


@dataclass
class _Counters:
    enqueued: int = 0
    dropped: int = 0
    listener_errors: int = 0


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


_counters = _Counters()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Stamp the bound request scope onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        scope = _request_context.get({})

        def resolve(attr: str, fallback: Any) -> Any:
            for candidate in (getattr(record, attr, None), scope.get(attr)):
                if candidate not in (None, _UNSET):
                    return candidate
            return fallback

        record.user_id = resolve("user_id", _UNSET)
        record.event_id = resolve("event_id", _UNSET)
        record.route = resolve("route", _UNSET)
        record.correlation_id = resolve(
            "correlation_id", scope.get("request_id") or _UNSET
        )
        record.request_id = resolve("request_id", record.correlation_id)
        record.component = resolve("component", record.name.split(".", 1)[0])
        record.operation = resolve("operation", _UNSET)
        return True


class ColoredFormatter(logging.Formatter):
    _RESET = "\033[0m"
    _LEVEL_COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[1;91m",
    }

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self._LEVEL_COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain}{self._RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


# Attributes every LogRecord has; anything else arrived through `extra=`.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Scope fields sit at the top level and are omitted when unset. Any other
    `extra=` fields are nested under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in SCOPE_FIELDS:
            value = getattr(record, name, None)
            if value not in (None, _UNSET):
                payload[name] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
            and key not in SCOPE_FIELDS
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _BoundedQueueHandler(QueueHandler):
    """Drops records instead of blocking when the queue is full."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _counters.dropped += 1
            sys.stderr.write("rankboard: log queue full, record dropped\n")


class _CountingListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _counters.listener_errors += 1
        sys.stderr.write("rankboard: log handler failed while writing a record\n")


def _console_handler(settings: _Settings) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if settings.json_console:
        handler.setFormatter(JSONFormatter())
    else:
        formatter_class = ColoredFormatter if settings.colors else logging.Formatter
        handler.setFormatter(formatter_class(fmt=_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _daily_file_handler(settings: _Settings) -> logging.Handler:
    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(settings.logs_dir / _DAILY_FILE),
        when="midnight",
        backupCount=settings.retention_days,
        encoding="utf-8",
        utc=True,
        delay=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue handler on the root logger (idempotent)."""
    global _counters, _log_queue, _listener

    root = logging.getLogger()
    if getattr(root, _INIT_FLAG, False):
        return

    settings = _Settings.from_config()
    _counters = _Counters()
    _log_queue = queue.Queue(settings.queue_size)

    sinks = [_console_handler(settings), _daily_file_handler(settings)]
    for sink in sinks:
        sink.setLevel(settings.level)

    _listener = _CountingListener(_log_queue, *sinks, respect_handler_level=True)
    _listener.start()

    # The filter runs on the emitting task, before the record leaves its context.
    handler = _BoundedQueueHandler(_log_queue)
    handler.setLevel(settings.level)
    handler.addFilter(ContextFilter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.level)

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    setattr(root, _INIT_FLAG, True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(settings.level),
            "json_console": settings.json_console,
            "logs_dir": str(settings.logs_dir),
            "queue_max_size": settings.queue_size,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue through the listener and detach every root handler."""
    global _listener, _log_queue

    root = logging.getLogger()
    if not getattr(root, _INIT_FLAG, False):
        return

    logging.getLogger(__name__).info("Shutting down logging subsystem")

    if _listener is not None:
        try:
            _listener.stop()
        finally:
            _listener = None

    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    setattr(root, _INIT_FLAG, False)
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    pending = _log_queue.qsize() if _log_queue is not None else 0
    capacity = _log_queue.maxsize if _log_queue is not None else 0
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INIT_FLAG, False)),
        queue_size=pending,
        queue_max_size=capacity,
        records_enqueued=_counters.enqueued,
        records_dropped=_counters.dropped,
        listener_errors=_counters.listener_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind request scope for the duration of a ``with`` block.

    A correlation id is generated when neither ``correlation_id`` nor
    ``request_id`` is given; ``request_id`` defaults to it.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        event_id: Optional[str] = None,
        route: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        correlation = correlation_id or request_id or uuid.uuid4().hex[:12]
        self.context: Dict[str, Any] = {
            "user_id": _UNSET if user_id is None else str(user_id),
            "event_id": _UNSET if event_id is None else str(event_id),
            "route": route or _UNSET,
            "component": component,
            "operation": operation,
            "correlation_id": correlation,
            "request_id": request_id or correlation,
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    @property
    def correlation_id(self) -> str:
        return self.context["correlation_id"]

    def __enter__(self) -> "LogContext":
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
    route: Optional[str] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge fields into the current scope without a ``with`` block."""
    scope = dict(_request_context.get({}))

    for key, value in (("user_id", user_id), ("event_id", event_id)):
        if value is not None:
            scope[key] = str(value)
    for key, value in (("route", route), ("component", component), ("operation", operation)):
        if value is not None:
            scope[key] = value

    if correlation_id:
        scope["correlation_id"] = correlation_id
    if request_id:
        scope["request_id"] = request_id
        scope.setdefault("correlation_id", request_id)

    scope.update(extra)
    _request_context.set(scope)


@contextmanager
def bound_log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Merge non-None `fields` into the current scope until the block exits.

    Unlike `LogContext`, the surrounding request fields stay bound.
    """
    scope = {**_request_context.get({}), **{k: v for k, v in fields.items() if v is not None}}
    token = _request_context.set(scope)
    try:
        yield dict(scope)
    finally:
        _request_context.reset(token)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get({}))


def clear_log_context() -> None:
    _request_context.set({})


setup_logging()
