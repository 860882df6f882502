"""
PostgreSQL Integration Tests (opt-in)
=====================================

Runs the update coordinator against a real PostgreSQL testcontainer so row
locks and the unique constraint are exercised across independent writers.

Enable with `RANKBOARD_DOCKER_TESTS=1` (requires Docker).
"""

import asyncio
import os

import pytest
import pytest_asyncio

from rankboard.core.config.config import Config
from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.service import DatabaseService
from rankboard.core.logging.logger import get_logger
from rankboard.modules.leaderboard.score_service import ScoreUpdateService
from rankboard.modules.leaderboard.service import LeaderboardService

logger = get_logger(__name__)

pytestmark = [
    pytest.mark.integration,
    pytest.mark.database,
    pytest.mark.postgres,
    pytest.mark.skipif(
        os.getenv("RANKBOARD_DOCKER_TESTS") != "1",
        reason="set RANKBOARD_DOCKER_TESTS=1 to run PostgreSQL testcontainer tests",
    ),
]


@pytest.fixture(scope="module")
def postgres_url():
    """
    Start a PostgreSQL testcontainer.

    Scope: module (container persists across this file)
    """
    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    container.start()
    try:
        yield container.get_connection_url()
    finally:
        logger.info("Stopping PostgreSQL testcontainer...")
        container.stop()


@pytest_asyncio.fixture
async def postgres_database(postgres_url, monkeypatch):
    monkeypatch.setattr(Config, "DATABASE_URL", postgres_url)
    DatabaseService._init_lock = None

    await DatabaseService.initialize()
    await DatabaseService.create_schema()

    yield DatabaseService

    from sqlalchemy import text

    async with DatabaseService.get_transaction() as session:
        await session.execute(text("TRUNCATE score_entries RESTART IDENTITY"))

    await DatabaseService.shutdown()
    DatabaseService._init_lock = None


class TestPostgresLedger:
    async def test_independent_writers_do_not_lose_updates(self, postgres_database):
        """
        Two services with separate in-process lock registries stand in for
        two server processes; only the database serializes them.
        """
        # Arrange
        writer_a = ScoreUpdateService(ConfigManager, None)
        writer_b = ScoreUpdateService(ConfigManager, None)
        reads = LeaderboardService(ConfigManager)

        # Act
        await asyncio.gather(
            *(
                writer.apply_score_update("hack-1", "u1", points=1, user_name="Ada")
                for _ in range(10)
                for writer in (writer_a, writer_b)
            )
        )

        # Assert
        entry = await reads.get_participant_rank("hack-1", "u1")
        assert entry.score == 20

    async def test_different_keys_proceed_in_parallel(self, postgres_database):
        writer = ScoreUpdateService(ConfigManager, None)
        reads = LeaderboardService(ConfigManager)

        await asyncio.gather(
            *(
                writer.apply_score_update("hack-1", f"u{i}", points=i, user_name=f"U{i}")
                for i in range(10)
            )
        )

        board = await reads.get_event_leaderboard("hack-1")
        assert [view.score for view in board] == list(range(9, -1, -1))

    async def test_health_check(self, postgres_database):
        assert await DatabaseService.health_check() is True
