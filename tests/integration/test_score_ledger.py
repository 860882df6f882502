"""
Integration Tests for the Score Ledger
======================================

Purpose
-------
Run the leaderboard services against a real database through
DatabaseService (SQLite file per test).

Test Coverage
-------------
- Entry creation and additive updates
- Home college resolution across events
- Cached rank versus display rank on ties
- Concurrent updates to one key
- Cross-event aggregation over stored rows
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from rankboard.core.event.bus import EventBus
from rankboard.database.models.score_entry import ScoreEntry
from rankboard.modules.leaderboard.aggregation import AggregationService
from rankboard.modules.leaderboard.locks import KeyedLockRegistry
from rankboard.modules.leaderboard.repository import ScoreEntryRepository
from rankboard.modules.leaderboard.score_service import (
    SCORE_UPDATED_EVENT,
    ScoreUpdateService,
)
from rankboard.modules.leaderboard.service import (
    PARTICIPANT_NOT_FOUND_MESSAGE,
    LeaderboardService,
)
from rankboard.modules.shared.exceptions import ConflictError, NotFoundError, ValidationError

pytestmark = [pytest.mark.integration, pytest.mark.database]


@pytest.fixture
def event_bus():
    return EventBus(config_manager=ConfigManager)


@pytest.fixture
def updates(database, event_bus):
    return ScoreUpdateService(ConfigManager, event_bus)


@pytest.fixture
def reads(database):
    return LeaderboardService(ConfigManager)


@pytest.fixture
def aggregates(database):
    return AggregationService(ConfigManager)


async def _row_count(database) -> int:
    async with database.get_session() as session:
        return (await session.execute(select(func.count(ScoreEntry.id)))).scalar_one()


def _worker(repository=None) -> ScoreUpdateService:
    """A coordinator with its own lock registry, standing in for a separate process."""
    return ScoreUpdateService(
        ConfigManager,
        None,
        repository=repository,
        lock_registry=KeyedLockRegistry(),
        retry_policy=DatabaseRetryPolicy(
            DatabaseRetryConfig(
                max_attempts=10,
                initial_backoff_ms=1,
                max_backoff_ms=50,
                jitter_ms=5,
                retriable_exceptions=(ConflictError, OperationalError),
            )
        ),
    )


# ============================================================================
# UPDATE RULES
# ============================================================================


class TestScoreUpdates:
    async def test_first_update_creates_entry(self, updates, reads, database):
        # Act
        created = await updates.apply_score_update(
            "hack-1", "u1", points=10, achievements=["First Blood"], user_name="Ada", college="MIT"
        )

        # Assert
        assert (created.score, created.rank, created.college) == (10, 1, "MIT")
        stored = await reads.get_participant_rank("hack-1", "u1")
        assert stored.score == 10
        assert stored.achievements == ("First Blood",)
        assert stored.last_updated is not None
        assert stored.last_updated.tzinfo is not None
        assert await _row_count(database) == 1

    async def test_updates_are_additive(self, updates):
        await updates.apply_score_update("hack-1", "u1", points=10, user_name="Ada")
        await updates.apply_score_update("hack-1", "u1", points=15)

        result = await updates.apply_score_update("hack-1", "u1", achievements=["b", "a"])

        assert result.score == 25
        assert result.achievements == ("b", "a")

    async def test_achievements_are_set_union(self, updates):
        await updates.apply_score_update("hack-1", "u1", achievements=["a", "b"], user_name="Ada")

        result = await updates.apply_score_update("hack-1", "u1", achievements=["b", "c"])

        assert result.achievements == ("a", "b", "c")

    async def test_new_entry_without_user_name_is_rejected(self, updates, database):
        with pytest.raises(ValidationError):
            await updates.apply_score_update("hack-1", "ghost", points=5)

        assert await _row_count(database) == 0

    async def test_name_and_college_ignored_on_existing_entry(self, updates):
        await updates.apply_score_update("hack-1", "u1", user_name="Ada", college="MIT")

        result = await updates.apply_score_update(
            "hack-1", "u1", points=1, user_name="Bob", college="Harvard"
        )

        assert result.user_name == "Ada"
        assert result.college == "MIT"

    async def test_home_college_follows_participant_across_events(self, updates):
        await updates.apply_score_update("hack-1", "u1", user_name="Ada", college="MIT")

        second = await updates.apply_score_update(
            "hack-2", "u1", points=3, user_name="Ada", college="Stanford"
        )

        assert second.college == "MIT"

    async def test_blank_college_never_becomes_home_college(self, updates, aggregates):
        first = await updates.apply_score_update(
            "hack-1", "u1", points=10, user_name="Ada", college="   "
        )
        second = await updates.apply_score_update(
            "hack-2", "u1", points=5, user_name="Ada", college="MIT"
        )

        assert first.college == ""
        assert second.college == "MIT"
        standings = await aggregates.get_college_leaderboard()
        assert [(s.college, s.total_score) for s in standings] == [("MIT", 5)]

    async def test_blank_user_name_ignored_on_existing_entry(self, updates):
        await updates.apply_score_update("hack-1", "u1", points=1, user_name="Ada")

        result = await updates.apply_score_update("hack-1", "u1", points=2, user_name="")

        assert result.score == 3
        assert result.user_name == "Ada"

    async def test_publishes_after_commit(self, updates, event_bus, reads):
        received = []

        async def listener(payload):
            # The row is already visible to other sessions.
            stored = await reads.get_participant_rank(payload["eventId"], payload["userId"])
            received.append((payload, stored.score))

        event_bus.subscribe(SCORE_UPDATED_EVENT, listener)

        await updates.apply_score_update("hack-1", "u1", points=4, user_name="Ada")

        assert received == [
            (
                {"eventId": "hack-1", "userId": "u1", "score": 4, "rank": 1, "achievements": []},
                4,
            )
        ]


# ============================================================================
# RANKING
# ============================================================================


class TestRanking:
    async def test_cached_rank_counts_strictly_higher_scores(self, updates):
        await updates.apply_score_update("hack-1", "a", points=100, user_name="A")
        await updates.apply_score_update("hack-1", "b", points=80, user_name="B")
        tied = await updates.apply_score_update("hack-1", "c", points=80, user_name="C")
        low = await updates.apply_score_update("hack-1", "d", points=50, user_name="D")

        assert tied.rank == 2
        assert low.rank == 4

    async def test_cached_rank_is_not_refreshed_for_others(self, updates, reads):
        await updates.apply_score_update("hack-1", "a", points=10, user_name="A")
        await updates.apply_score_update("hack-1", "b", points=20, user_name="B")

        # "a" was rank 1 when written; the live lookup recomputes.
        live = await reads.get_participant_rank("hack-1", "a")

        assert live.rank == 2

    async def test_display_ranks_are_positional(self, updates, reads):
        await updates.apply_score_update("hack-1", "first", points=50, user_name="F")
        await updates.apply_score_update("hack-1", "second", points=50, user_name="S")
        await updates.apply_score_update("hack-1", "leader", points=70, user_name="L")
        await updates.apply_score_update("hack-2", "other", points=999, user_name="O")

        board = await reads.get_event_leaderboard("hack-1")

        assert [(view.user_id, view.rank) for view in board] == [
            ("leader", 1),
            ("first", 2),
            ("second", 3),
        ]
        assert (await reads.get_participant_rank("hack-1", "second")).rank == 2

    async def test_event_leaderboard_limit(self, updates, reads):
        ConfigManager.set_override("leaderboard.event_limit", 2)
        for i in range(4):
            await updates.apply_score_update("hack-1", f"u{i}", points=i, user_name=f"U{i}")

        board = await reads.get_event_leaderboard("hack-1")

        assert [view.score for view in board] == [3, 2]

    async def test_unknown_event_is_empty(self, reads):
        assert await reads.get_event_leaderboard("nothing-here") == []

    async def test_missing_participant(self, reads):
        with pytest.raises(NotFoundError) as exc_info:
            await reads.get_participant_rank("hack-1", "nobody")

        assert exc_info.value.message == PARTICIPANT_NOT_FOUND_MESSAGE


# ============================================================================
# CONCURRENCY
# ============================================================================


class TestConcurrentUpdates:
    async def test_same_key_updates_are_not_lost(self, updates, database):
        await updates.apply_score_update("hack-1", "u1", user_name="Ada")

        await asyncio.gather(
            *(
                updates.apply_score_update("hack-1", "u1", points=1, achievements=[f"a{i % 3}"])
                for i in range(20)
            )
        )

        result = await updates.apply_score_update("hack-1", "u1")
        assert result.score == 20
        assert sorted(result.achievements) == ["a0", "a1", "a2"]
        assert await _row_count(database) == 1

    async def test_concurrent_first_updates_create_one_row(self, updates, database):
        results = await asyncio.gather(
            *(
                updates.apply_score_update("hack-1", "u1", points=2, user_name="Ada")
                for _ in range(5)
            )
        )

        assert sorted(view.score for view in results) == [2, 4, 6, 8, 10]
        assert await _row_count(database) == 1

    async def test_notifications_follow_commit_order(self, updates, event_bus):
        scores = []

        async def listener(payload):
            scores.append(payload["score"])

        event_bus.subscribe(SCORE_UPDATED_EVENT, listener)

        await asyncio.gather(
            *(
                updates.apply_score_update("hack-1", "u1", points=1, user_name="Ada")
                for _ in range(5)
            )
        )

        assert scores == [1, 2, 3, 4, 5]


class TestIndependentWorkers:
    async def test_workers_without_shared_locks_do_not_lose_updates(self, database):
        first, second = _worker(), _worker()
        await first.apply_score_update("hack-1", "u1", user_name="Ada")

        await asyncio.gather(
            *(
                (first if i % 2 else second).apply_score_update("hack-1", "u1", points=1)
                for i in range(40)
            )
        )

        final = await first.apply_score_update("hack-1", "u1")
        assert final.score == 40
        assert await _row_count(database) == 1

    async def test_first_time_race_between_workers_creates_one_row(self, database):
        first, second = _worker(), _worker()

        results = await asyncio.gather(
            *(
                (first if i % 2 else second).apply_score_update(
                    "hack-1", "u1", points=3, user_name="Ada"
                )
                for i in range(10)
            )
        )

        assert sorted(view.score for view in results) == [3 * n for n in range(1, 11)]
        assert await _row_count(database) == 1

    async def test_insert_conflict_on_stored_row_retries_as_update(self, database, mocker):
        await _worker().apply_score_update("hack-1", "u1", points=3, user_name="Ada")

        repository = ScoreEntryRepository()
        real_lookup = repository.get_for_key
        lookups = []

        async def stale_first_lookup(session, event_id, user_id, **kwargs):
            lookups.append(user_id)
            if len(lookups) == 1:
                return None
            return await real_lookup(session, event_id, user_id, **kwargs)

        mocker.patch.object(repository, "get_for_key", side_effect=stale_first_lookup)

        view = await _worker(repository).apply_score_update(
            "hack-1", "u1", points=4, user_name="Ada"
        )

        assert view.score == 7
        assert len(lookups) == 2
        assert await _row_count(database) == 1


# ============================================================================
# AGGREGATION
# ============================================================================


class TestAggregation:
    async def test_top_performers_across_events(self, updates, aggregates):
        await updates.apply_score_update("hack-1", "alice", points=40, user_name="Alice", college="MIT")
        await updates.apply_score_update("hack-1", "bob", points=70, user_name="Bob", college="CMU")
        await updates.apply_score_update("hack-2", "alice", points=50, user_name="Alice")

        performers = await aggregates.get_top_performers()

        assert [(p.user_id, p.total_score, p.event_count, p.college) for p in performers] == [
            ("alice", 90, 2, "MIT"),
            ("bob", 70, 1, "CMU"),
        ]

    async def test_college_standings_group_by_exact_name(self, updates, aggregates):
        await updates.apply_score_update("hack-1", "a", points=10, user_name="A", college="MIT")
        await updates.apply_score_update("hack-1", "b", points=20, user_name="B", college="mit")
        await updates.apply_score_update("hack-2", "a", points=5, user_name="A")
        await updates.apply_score_update("hack-2", "c", points=100, user_name="C")

        standings = await aggregates.get_college_leaderboard()

        assert [(s.college, s.total_score, s.participant_count, s.event_count) for s in standings] == [
            ("mit", 20, 1, 1),
            ("MIT", 15, 1, 2),
        ]

    async def test_normalized_policy_from_config(self, updates, aggregates):
        ConfigManager.set_override("leaderboard.college_policy", "normalized")
        await updates.apply_score_update("hack-1", "a", points=10, user_name="A", college="MIT")
        await updates.apply_score_update("hack-1", "b", points=20, user_name="B", college="mit")

        standings = await aggregates.get_college_leaderboard()

        assert [(s.college, s.total_score) for s in standings] == [("MIT", 30)]

    async def test_empty_ledger(self, aggregates):
        assert await aggregates.get_top_performers() == []
        assert await aggregates.get_college_leaderboard() == []


# ============================================================================
# WORKED EXAMPLE
# ============================================================================


class TestHackathonWalkthrough:
    """One event history checked step by step through every read path."""

    async def test_walkthrough(self, updates, reads, aggregates):
        # First and only entry.
        first = await updates.apply_score_update(
            "E1", "U1", points=50, user_name="Alice", college="MIT"
        )
        assert (first.score, first.rank) == (50, 1)

        # Additive update with an achievement.
        second = await updates.apply_score_update(
            "E1", "U1", points=30, achievements=["First Place"]
        )
        assert second.score == 80
        assert second.achievements == ("First Place",)

        # A later participant ties: shared count-based rank, positional display rank.
        await updates.apply_score_update("E1", "U2", points=80, user_name="Bob", college="MIT")
        assert (await reads.get_participant_rank("E1", "U1")).rank == 1
        assert (await reads.get_participant_rank("E1", "U2")).rank == 1
        board = await reads.get_event_leaderboard("E1")
        assert [(view.user_id, view.rank) for view in board] == [("U1", 1), ("U2", 2)]

        # Cross-event totals.
        await updates.apply_score_update("E2", "U1", points=20, user_name="Alice")
        performers = {p.user_id: p for p in await aggregates.get_top_performers()}
        assert performers["U1"].total_score == 100
        assert performers["U1"].event_count == 2

    async def test_college_totals(self, updates, aggregates):
        await updates.apply_score_update("E1", "U1", points=80, user_name="Alice", college="MIT")
        await updates.apply_score_update("E1", "U2", points=20, user_name="Bob", college="MIT")

        (mit,) = await aggregates.get_college_leaderboard()

        assert (mit.college, mit.total_score, mit.participant_count) == ("MIT", 100, 2)
