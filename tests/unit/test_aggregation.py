"""
Unit tests for cross-event aggregation.

Tests achievement merging, top performer totals, college standings and the
college key policies.
"""

from types import SimpleNamespace

import pytest

from rankboard.core.exceptions import ConfigurationError
from rankboard.modules.leaderboard.aggregation import (
    AggregationService,
    ExactCollegePolicy,
    NormalizedCollegePolicy,
    aggregate_college_standings,
    aggregate_top_performers,
    get_college_policy,
    merge_achievements,
)


class TestMergeAchievements:
    def test_appends_unseen_items_in_order(self):
        assert merge_achievements(["a", "b"], ["c", "a", "d"]) == ["a", "b", "c", "d"]

    def test_deduplicates_incoming(self):
        assert merge_achievements([], ["x", "x", "y"]) == ["x", "y"]

    def test_case_and_whitespace_are_significant(self):
        assert merge_achievements(["First Blood"], ["first blood", "First Blood "]) == [
            "First Blood",
            "first blood",
            "First Blood ",
        ]

    def test_empty_inputs(self):
        assert merge_achievements([], []) == []


class TestTopPerformers:
    def test_sums_scores_across_events(self, make_entry):
        entries = [
            make_entry("e1", "alice", 40, college="MIT"),
            make_entry("e1", "bob", 70, college="CMU"),
            make_entry("e2", "alice", 50, college="MIT"),
        ]

        performers = aggregate_top_performers(entries)

        assert [(p.user_id, p.total_score, p.event_count) for p in performers] == [
            ("alice", 90, 2),
            ("bob", 70, 1),
        ]

    def test_name_and_college_come_from_first_entry(self, make_entry):
        entries = [
            make_entry("e1", "alice", 10, user_name="Alice", college="MIT"),
            make_entry("e2", "alice", 10, user_name="Alice B.", college="Harvard"),
        ]

        (performer,) = aggregate_top_performers(entries)

        assert performer.user_name == "Alice"
        assert performer.college == "MIT"

    def test_achievements_are_unioned(self, make_entry):
        entries = [
            make_entry("e1", "alice", 10, achievements=["a", "b"]),
            make_entry("e2", "alice", 10, achievements=["b", "c"]),
        ]

        (performer,) = aggregate_top_performers(entries)

        assert performer.achievements == ("a", "b", "c")

    def test_ties_keep_first_seen_order(self, make_entry):
        entries = [
            make_entry("e1", "zed", 10),
            make_entry("e1", "amy", 10),
        ]

        performers = aggregate_top_performers(entries)

        assert [p.user_id for p in performers] == ["zed", "amy"]

    def test_limit(self, make_entry):
        entries = [make_entry("e1", f"u{i}", i) for i in range(30)]

        performers = aggregate_top_performers(entries, limit=20)

        assert len(performers) == 20
        assert performers[0].total_score == 29

    def test_empty_ledger(self):
        assert aggregate_top_performers([]) == []


class TestCollegeStandings:
    def test_groups_by_exact_string(self, make_entry):
        entries = [
            make_entry("e1", "a", 10, college="MIT"),
            make_entry("e1", "b", 20, college="mit"),
            make_entry("e2", "c", 5, college="MIT"),
        ]

        standings = aggregate_college_standings(entries)

        assert [(s.college, s.total_score) for s in standings] == [
            ("mit", 20),
            ("MIT", 15),
        ]

    def test_counts_distinct_participants_and_events(self, make_entry):
        entries = [
            make_entry("e1", "a", 10, college="MIT"),
            make_entry("e2", "a", 10, college="MIT"),
            make_entry("e2", "b", 10, college="MIT"),
        ]

        (standing,) = aggregate_college_standings(entries)

        assert standing.total_score == 30
        assert standing.participant_count == 2
        assert standing.event_count == 2

    def test_entries_without_college_are_skipped(self, make_entry):
        entries = [
            make_entry("e1", "a", 100, college=""),
            make_entry("e1", "c", 50, college="   "),
            make_entry("e1", "b", 5, college="CMU"),
        ]

        standings = aggregate_college_standings(entries)

        assert [s.college for s in standings] == ["CMU"]

    def test_normalized_policy_merges_variants(self, make_entry):
        entries = [
            make_entry("e1", "a", 10, college="Stanford University"),
            make_entry("e1", "b", 20, college="  stanford   university "),
        ]

        standings = aggregate_college_standings(entries, policy=NormalizedCollegePolicy())

        assert len(standings) == 1
        assert standings[0].college == "Stanford University"
        assert standings[0].total_score == 30

    def test_limit(self, make_entry):
        entries = [make_entry("e1", f"u{i}", i, college=f"C{i}") for i in range(25)]

        assert len(aggregate_college_standings(entries, limit=20)) == 20


class TestCollegePolicies:
    def test_exact_policy_is_identity(self):
        assert ExactCollegePolicy().key(" MIT ") == " MIT "

    def test_lookup_by_name(self):
        assert get_college_policy("exact").name == "exact"
        assert get_college_policy("Normalized").name == "normalized"

    def test_unknown_policy_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_college_policy("fuzzy")

        assert exc_info.value.config_key == "leaderboard.college_policy"


@pytest.mark.asyncio
class TestAggregationService:
    """Service wiring: configured limits and policy, queries via the repository."""

    @pytest.fixture
    def repository(self, mocker):
        repo = mocker.MagicMock()
        repo.top_user_ids = mocker.AsyncMock(return_value=[])
        repo.entries_for_users = mocker.AsyncMock(return_value=[])
        repo.college_totals = mocker.AsyncMock(return_value=[])
        repo.college_rows = mocker.AsyncMock(return_value=[])
        return repo

    async def test_exact_policy_uses_grouped_query(
        self, mock_config_manager, repository, fake_session
    ):
        # Arrange
        repository.college_totals.return_value = [
            SimpleNamespace(college="mit", total_score=20, participant_count=1, event_count=1),
            SimpleNamespace(college="MIT", total_score=15, participant_count=1, event_count=2),
        ]
        service = AggregationService(mock_config_manager, repository=repository)

        # Act
        standings = await service.get_college_leaderboard()

        # Assert
        repository.college_totals.assert_awaited_once_with(fake_session, 20)
        repository.college_rows.assert_not_awaited()
        assert [(s.college, s.total_score, s.event_count) for s in standings] == [
            ("mit", 20, 1),
            ("MIT", 15, 2),
        ]

    async def test_normalized_policy_groups_rows_with_configured_limit(
        self, mock_config_manager, repository, fake_session, make_entry
    ):
        overrides = {
            "leaderboard.college_limit": 1,
            "leaderboard.college_policy": "normalized",
        }
        mock_config_manager.get.side_effect = lambda key, default=None: overrides.get(
            key, default
        )
        repository.college_rows.return_value = [
            make_entry("e1", "a", 10, college="MIT"),
            make_entry("e1", "b", 10, college="mit"),
            make_entry("e1", "c", 15, college="CMU"),
        ]
        service = AggregationService(mock_config_manager, repository=repository)

        standings = await service.get_college_leaderboard()

        repository.college_totals.assert_not_awaited()
        assert [(s.college, s.total_score) for s in standings] == [("MIT", 20)]

    async def test_top_performers_load_rows_for_top_users_only(
        self, mock_config_manager, repository, fake_session, make_entry
    ):
        repository.top_user_ids.return_value = ["b", "a"]
        repository.entries_for_users.return_value = [
            make_entry("e1", "a", 10, achievements=["x"]),
            make_entry("e1", "b", 30),
            make_entry("e2", "a", 5, achievements=["x", "y"]),
        ]
        service = AggregationService(mock_config_manager, repository=repository)

        performers = await service.get_top_performers()

        repository.top_user_ids.assert_awaited_once_with(fake_session, 20)
        repository.entries_for_users.assert_awaited_once_with(fake_session, ["b", "a"])
        assert [(p.user_id, p.total_score, p.achievements) for p in performers] == [
            ("b", 30, ()),
            ("a", 15, ("x", "y")),
        ]
