"""
Leaderboard domain: score ledger writes, rank reads and cross-event
aggregation.
"""

from rankboard.modules.leaderboard.aggregation import (
    AggregationService,
    CollegeKeyPolicy,
    ExactCollegePolicy,
    NormalizedCollegePolicy,
    aggregate_college_standings,
    aggregate_top_performers,
    get_college_policy,
    merge_achievements,
)
from rankboard.modules.leaderboard.locks import KeyedLockRegistry
from rankboard.modules.leaderboard.ranking import assign_display_ranks, cached_rank
from rankboard.modules.leaderboard.score_service import (
    SCORE_UPDATED_EVENT,
    ScoreUpdateService,
)
from rankboard.modules.leaderboard.service import LeaderboardService
from rankboard.modules.leaderboard.views import (
    CollegeStanding,
    ScoreEntryView,
    TopPerformer,
)

__all__ = [
    "AggregationService",
    "CollegeKeyPolicy",
    "CollegeStanding",
    "ExactCollegePolicy",
    "KeyedLockRegistry",
    "LeaderboardService",
    "NormalizedCollegePolicy",
    "SCORE_UPDATED_EVENT",
    "ScoreEntryView",
    "ScoreUpdateService",
    "TopPerformer",
    "aggregate_college_standings",
    "aggregate_top_performers",
    "assign_display_ranks",
    "cached_rank",
    "get_college_policy",
    "merge_achievements",
]
