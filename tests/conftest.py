"""
Pytest Configuration and Fixtures for Rankboard Tests
=====================================================

Purpose
-------
Centralized fixtures for the Rankboard test suite: environment setup,
database lifecycle, service mocks and sample ledger rows.

Architecture Notes
------------------
- The environment is forced to `testing` before any `rankboard` import so
  `Config` loads test values and `DatabaseService` uses NullPool.
- Unit tests use mocks (fast, isolated).
- Integration tests run against a throwaway SQLite file through the real
  `DatabaseService`; PostgreSQL runs are opt-in via testcontainers.
- Every database fixture gives a clean schema per test.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Iterator

# Must precede every rankboard import: Config loads at import time.
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOGS_DIR", os.path.join(tempfile.gettempdir(), "rankboard-test-logs"))
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_RETRY_INITIAL_BACKOFF_MS", "0")
os.environ.setdefault("DATABASE_RETRY_JITTER_MS", "0")

import pytest
import pytest_asyncio

from rankboard.core.config.config import Config
from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.service import DatabaseService
from rankboard.core.logging.logger import clear_log_context, get_logger

logger = get_logger(__name__)


# ============================================================================
# GLOBAL STATE
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_global_state() -> Iterator[None]:
    """Clear config overrides and log context between tests."""
    yield
    ConfigManager.clear_overrides()
    clear_log_context()


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path.as_posix()}"


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialize DatabaseService against a fresh SQLite file with the schema created.

    Scope: function (clean ledger per test)
    """
    monkeypatch.setattr(Config, "DATABASE_URL", sqlite_url(tmp_path / "ledger.db"))
    DatabaseService._init_lock = None

    await DatabaseService.initialize()
    await DatabaseService.create_schema()

    yield DatabaseService

    await DatabaseService.shutdown()
    DatabaseService._init_lock = None


@pytest.fixture
def sqlite_database_url(tmp_path, monkeypatch) -> str:
    """Point Config at a fresh SQLite file without initializing the engine."""
    url = sqlite_url(tmp_path / "api.db")
    monkeypatch.setattr(Config, "DATABASE_URL", url)
    DatabaseService._init_lock = None
    yield url
    DatabaseService._init_lock = None


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Unit tests that need to observe event publishing
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(return_value="listener-id")
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager for unit tests.

    Scope: function
    Uses: Unit tests that need configuration; every key resolves to the
    caller's default unless a test sets `side_effect`.
    """
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    return mock_config


@pytest.fixture
def fake_transaction(mocker):
    """
    Replace `DatabaseService.get_transaction` with a context manager that
    yields a mock session and records how many transactions were opened.
    """
    session = mocker.MagicMock(name="session")
    opened = SimpleNamespace(count=0, session=session)

    @asynccontextmanager
    async def _transaction():
        opened.count += 1
        yield session

    mocker.patch.object(DatabaseService, "get_transaction", _transaction)
    return opened


@pytest.fixture
def fake_session(mocker):
    """Replace `DatabaseService.get_session` with a context manager yielding a mock session."""
    session = mocker.MagicMock(name="read_session")

    @asynccontextmanager
    async def _session():
        yield session

    mocker.patch.object(DatabaseService, "get_session", _session)
    return session


# ============================================================================
# TEST DATA
# ============================================================================


def _make_entry(
    event_id: str = "evt-1",
    user_id: str = "u-1",
    score: int = 0,
    *,
    user_name: str | None = None,
    college: str = "",
    achievements: list[str] | None = None,
    rank: int = 0,
    entry_id: int = 0,
) -> Any:
    """Duck-typed ledger row for pure ranking and aggregation tests."""
    return SimpleNamespace(
        id=entry_id,
        event_id=event_id,
        user_id=user_id,
        user_name=user_name or user_id.upper(),
        score=score,
        college=college,
        achievements=list(achievements or []),
        rank=rank,
        last_updated=None,
    )


@pytest.fixture
def make_entry():
    """Factory for duck-typed ledger rows."""
    return _make_entry
