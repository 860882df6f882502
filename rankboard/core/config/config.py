"""
Static configuration for the Rankboard service.

Settings here are read once from the environment (with `.env` support) when
the module is imported and require a restart to change. Leaderboard
tunables such as page limits or the college grouping policy live in YAML and
are served by `ConfigManager` instead.

Environment Variables
---------------------
General
    ENVIRONMENT         development | testing | staging | production
    DEBUG               enable debug behaviour (default: false)
    LOG_LEVEL           DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOG_JSON            force JSON console logs on or off (default: auto)
    LOG_QUEUE_SIZE      bounded log queue capacity (default: 10000)
    LOG_RETENTION_DAYS  rotated daily log files to keep (default: 1)
    LOGS_DIR            directory for the daily JSON log file
    RANKBOARD_CONFIG_DIR  directory holding YAML tunables

Ledger database
    DATABASE_URL        SQLAlchemy async URL (default: local SQLite file)
    DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW, DATABASE_POOL_RECYCLE,
    DATABASE_POOL_TIMEOUT, DATABASE_STATEMENT_TIMEOUT_MS, DATABASE_ECHO
    DATABASE_AUTO_CREATE  create tables on startup (default: on outside production)

Score update retries
    DATABASE_RETRY_MAX_ATTEMPTS, DATABASE_RETRY_INITIAL_BACKOFF_MS,
    DATABASE_RETRY_MAX_BACKOFF_MS, DATABASE_RETRY_JITTER_MS

HTTP / WebSocket API
    API_HOST, API_PORT, CORS_ORIGINS (comma separated)
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

_TRUE_WORDS = frozenset({"true", "yes", "1", "on"})
_FALSE_WORDS = frozenset({"false", "no", "0", "off"})
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./rankboard.db"


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse an environment name, falling back to development.

        >>> Environment.from_string("PRODUCTION") is Environment.PRODUCTION
        True
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            # Structured logging is not configured yet at this point.
            logging.warning("Unknown environment %r, defaulting to development", value)
            return cls.DEVELOPMENT


@dataclass
class _LoadReport:
    """Which settings came from the environment, and which were rejected."""

    from_env: List[str] = field(default_factory=list)
    defaulted: List[str] = field(default_factory=list)
    problems: Dict[str, str] = field(default_factory=dict)
    loaded_at: Optional[str] = None

    def note(self, key: str, from_env: bool) -> None:
        (self.from_env if from_env else self.defaulted).append(key)

    def reject(self, key: str, problem: str) -> None:
        self.problems[key] = problem
        logging.warning("%s", problem)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "from_environment": len(self.from_env),
            "from_defaults": len(self.defaulted),
            "rejected": sorted(self.problems),
            "loaded_at": self.loaded_at,
        }


class Config:
    """
    Process-wide settings, exposed as class attributes.

    >>> Config.API_PORT
    5004
    >>> Config.is_production()
    False
    """

    _report: _LoadReport = _LoadReport()
    _validated: bool = False

    # General
    ENVIRONMENT: str = Environment.DEVELOPMENT.value
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_QUEUE_SIZE: int = 10_000
    LOG_RETENTION_DAYS: int = 1

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # Ledger database
    DATABASE_URL: str = _DEFAULT_DATABASE_URL
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_AUTO_CREATE: bool = True

    # Score update retries
    DATABASE_RETRY_MAX_ATTEMPTS: int = 3
    DATABASE_RETRY_INITIAL_BACKOFF_MS: int = 50
    DATABASE_RETRY_MAX_BACKOFF_MS: int = 1000
    DATABASE_RETRY_JITTER_MS: int = 50

    # API
    SERVICE_NAME: str = "rankboard"
    SERVICE_VERSION: str = "1.0.0"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5004
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # =========================================================================
    # Environment readers
    # =========================================================================

    @classmethod
    def _raw(cls, key: str) -> Optional[str]:
        raw = os.getenv(key)
        cls._report.note(key, raw is not None)
        return raw

    @classmethod
    def _int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Read an integer, keeping `default` when unset, malformed or out of range.

        >>> Config._int("API_PORT", 5004, min_val=1, max_val=65535)
        5004
        """
        raw = cls._raw(key)
        if raw is None:
            return default

        try:
            value = int(raw)
        except ValueError:
            cls._report.reject(key, f"{key}={raw!r} is not an integer; using {default}")
            return default

        if min_val is not None and value < min_val:
            cls._report.reject(key, f"{key}={value} is below {min_val}; using {default}")
            return default
        if max_val is not None and value > max_val:
            cls._report.reject(key, f"{key}={value} is above {max_val}; using {default}")
            return default
        return value

    @classmethod
    def _optional_bool(cls, key: str) -> Optional[bool]:
        """Tri-state flag: None when unset or unrecognised."""
        raw = cls._raw(key)
        if raw is None:
            return None

        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False

        cls._report.reject(key, f"{key}={raw!r} is not a boolean")
        return None

    @classmethod
    def _bool(cls, key: str, default: bool) -> bool:
        value = cls._optional_bool(key)
        return default if value is None else value

    @classmethod
    def _str(cls, key: str, default: str) -> str:
        raw = cls._raw(key)
        return default if raw is None else raw

    @classmethod
    def _list(cls, key: str, default: List[str]) -> List[str]:
        """Comma separated list; blank items are dropped."""
        raw = cls._raw(key)
        if raw is None:
            return list(default)
        return [item.strip() for item in raw.split(",") if item.strip()]

    @classmethod
    def _path(cls, key: str, default: Path) -> Path:
        raw = cls._raw(key)
        return Path(raw) if raw else default

    # =========================================================================
    # Loading & validation
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """(Re)read every setting from the environment."""
        cls._report = _LoadReport()

        cls.ENVIRONMENT = Environment.from_string(
            cls._str("ENVIRONMENT", Environment.DEVELOPMENT.value)
        ).value
        cls.DEBUG = cls._bool("DEBUG", False)
        cls.LOG_LEVEL = cls._str("LOG_LEVEL", "INFO").upper()
        cls.LOG_JSON = cls._optional_bool("LOG_JSON")
        cls.LOG_QUEUE_SIZE = cls._int("LOG_QUEUE_SIZE", 10_000, min_val=100)
        cls.LOG_RETENTION_DAYS = cls._int("LOG_RETENTION_DAYS", 1, min_val=0, max_val=365)
        cls.LOGS_DIR = cls._path("LOGS_DIR", cls.PROJECT_ROOT / "logs")
        cls.CONFIG_DIR = cls._path("RANKBOARD_CONFIG_DIR", cls.PROJECT_ROOT / "config")

        cls.DATABASE_URL = cls._str("DATABASE_URL", _DEFAULT_DATABASE_URL)
        cls.DATABASE_POOL_SIZE = cls._int("DATABASE_POOL_SIZE", 10, min_val=1, max_val=200)
        cls.DATABASE_MAX_OVERFLOW = cls._int("DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200)
        cls.DATABASE_ECHO = cls._bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_RECYCLE = cls._int("DATABASE_POOL_RECYCLE", 1800, min_val=60)
        cls.DATABASE_POOL_TIMEOUT = cls._int("DATABASE_POOL_TIMEOUT", 30, min_val=1, max_val=600)
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )
        cls.DATABASE_AUTO_CREATE = cls._bool("DATABASE_AUTO_CREATE", not cls.is_production())

        cls.DATABASE_RETRY_MAX_ATTEMPTS = cls._int(
            "DATABASE_RETRY_MAX_ATTEMPTS", 3, min_val=1, max_val=20
        )
        cls.DATABASE_RETRY_INITIAL_BACKOFF_MS = cls._int(
            "DATABASE_RETRY_INITIAL_BACKOFF_MS", 50, min_val=0
        )
        cls.DATABASE_RETRY_MAX_BACKOFF_MS = cls._int("DATABASE_RETRY_MAX_BACKOFF_MS", 1000, min_val=0)
        cls.DATABASE_RETRY_JITTER_MS = cls._int("DATABASE_RETRY_JITTER_MS", 50, min_val=0)

        cls.API_HOST = cls._str("API_HOST", "0.0.0.0")
        cls.API_PORT = cls._int("API_PORT", 5004, min_val=1, max_val=65535)
        cls.CORS_ORIGINS = cls._list("CORS_ORIGINS", ["http://localhost:5173"])

        cls._report.loaded_at = datetime.now(timezone.utc).isoformat()

    @classmethod
    def _production_warnings(cls) -> List[str]:
        warnings: List[str] = []
        if cls.DATABASE_URL.startswith("sqlite"):
            warnings.append("SQLite ledger in production; cross-process updates are not row-locked")
        if "user:password" in cls.DATABASE_URL:
            warnings.append("Default database credentials in production")
        if cls.DEBUG:
            warnings.append("DEBUG enabled in production")
        if "*" in cls.CORS_ORIGINS:
            warnings.append("Wildcard CORS origin in production")
        return warnings

    @classmethod
    def validate(cls) -> None:
        """
        Load and sanity-check settings once per process.

        Problems are logged and replaced by defaults; only a missing
        `DATABASE_URL` in production raises.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        if cls.LOG_LEVEL not in _LOG_LEVELS:
            cls._report.reject("LOG_LEVEL", f"LOG_LEVEL={cls.LOG_LEVEL!r} is not a level; using INFO")
            cls.LOG_LEVEL = "INFO"

        if not cls.DATABASE_URL:
            if cls.is_production():
                raise ValueError("DATABASE_URL environment variable is required")
            logger.warning("DATABASE_URL is empty; using the local SQLite ledger")
            cls.DATABASE_URL = _DEFAULT_DATABASE_URL

        if cls.is_production():
            for message in cls._production_warnings():
                logger.warning(message)

        cls.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        cls._validated = True

        logger.info("Configuration loaded: %s", cls._report.as_dict())

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Non-sensitive settings for startup logs.

        Only the scheme of the database URL is included.
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "database_max_overflow": cls.DATABASE_MAX_OVERFLOW,
            "database_retry_max_attempts": cls.DATABASE_RETRY_MAX_ATTEMPTS,
            "api_port": cls.API_PORT,
            "service_version": cls.SERVICE_VERSION,
        }


# Auto-validate on import
Config.validate()
