"""
Cross-event aggregation: Top Performers and College Standings.

Purpose
-------
Summarize the whole ledger across events:

- **Top Performers**: one row per participant, summing their scores over
  every event they took part in.
- **College Standings**: one row per college, summing the scores of its
  participants and counting distinct participants and events.

Design Notes
------------
- The aggregations are pure functions over rows in insertion order
  (`aggregate_top_performers`, `aggregate_college_standings`), so they are
  unit-testable without a database.
- `AggregationService` keeps the heavy lifting in the database. Top
  Performers ranks participants with a `GROUP BY` and loads rows only for
  the top `limit` of them. College Standings under the exact policy is one
  grouped query; the normalized policy groups column tuples in Python,
  since its key cannot be expressed portably in SQL.
- Blank (empty or whitespace-only) colleges never form a group.
- College grouping goes through a `CollegeKeyPolicy`. The default
  `ExactCollegePolicy` groups by the literal string, so "MIT" and "mit"
  are different colleges. `NormalizedCollegePolicy` case-folds and
  collapses whitespace instead. The policy is chosen by the
  `leaderboard.college_policy` tunable.
- Sorting is stable: equal totals keep first-seen order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import Logger
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
)

from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.service import DatabaseService
from rankboard.core.logging.logger import get_logger
from rankboard.modules.leaderboard.repository import ScoreEntryRepository
from rankboard.modules.leaderboard.views import CollegeStanding, TopPerformer
from rankboard.modules.shared.base_service import BaseService


# ============================================================================
# Achievements
# ============================================================================


def merge_achievements(existing: Iterable[str], incoming: Iterable[str]) -> List[str]:
    """
    Ordered set union: `existing` order first, then unseen `incoming` items.

    >>> merge_achievements(["a", "b"], ["b", "c", "c"])
    ['a', 'b', 'c']
    """
    merged: List[str] = []
    seen: Set[str] = set()
    for item in list(existing) + list(incoming):
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


# ============================================================================
# College Key Policies
# ============================================================================


class CollegeKeyPolicy(Protocol):
    name: str

    def key(self, college: str) -> str:
        ...


class ExactCollegePolicy:
    """Group by the literal college string."""

    name = "exact"

    def key(self, college: str) -> str:
        return college


class NormalizedCollegePolicy:
    """Group case-insensitively with surrounding and repeated whitespace ignored."""

    name = "normalized"

    def key(self, college: str) -> str:
        return " ".join(college.split()).casefold()


COLLEGE_POLICIES: Dict[str, CollegeKeyPolicy] = {
    ExactCollegePolicy.name: ExactCollegePolicy(),
    NormalizedCollegePolicy.name: NormalizedCollegePolicy(),
}


def get_college_policy(name: str) -> CollegeKeyPolicy:
    """
    Look up a policy by its configured name.

    Raises
    ------
    ConfigurationError
        If `name` is not a known policy.
    """
    policy = COLLEGE_POLICIES.get(str(name).strip().lower())
    if policy is None:
        from rankboard.core.exceptions import ConfigurationError

        raise ConfigurationError(
            "leaderboard.college_policy",
            f"Unknown college policy '{name}'; expected one of "
            f"{sorted(COLLEGE_POLICIES)}",
        )
    return policy


# ============================================================================
# Pure Aggregations
# ============================================================================


@dataclass
class _PerformerAccumulator:
    user_id: str
    user_name: str
    college: str
    total_score: int = 0
    event_count: int = 0
    achievements: List[str] = field(default_factory=list)
    seen: Set[str] = field(default_factory=set)

    def add_achievements(self, incoming: Iterable[str]) -> None:
        for item in incoming:
            if item not in self.seen:
                self.seen.add(item)
                self.achievements.append(item)


@dataclass
class _CollegeAccumulator:
    display: str
    total_score: int = 0
    participants: Set[str] = field(default_factory=set)
    events: Set[str] = field(default_factory=set)


def _take(ranked: List[Any], limit: Optional[int]) -> List[Any]:
    if limit is None:
        return ranked
    return ranked[: max(limit, 0)]


def aggregate_top_performers(
    entries: Sequence[Any],
    limit: Optional[int] = None,
) -> List[TopPerformer]:
    """
    Group `entries` (insertion order) by participant.

    Name and college come from the participant's first entry; achievements
    are the ordered union across all entries.
    """
    groups: Dict[str, _PerformerAccumulator] = {}

    for entry in entries:
        acc = groups.get(entry.user_id)
        if acc is None:
            acc = groups[entry.user_id] = _PerformerAccumulator(
                user_id=entry.user_id,
                user_name=entry.user_name,
                college=entry.college or "",
            )
        acc.total_score += int(entry.score)
        acc.event_count += 1
        acc.add_achievements(entry.achievements or ())

    ranked = sorted(groups.values(), key=lambda acc: -acc.total_score)

    return [
        TopPerformer(
            user_id=acc.user_id,
            user_name=acc.user_name,
            college=acc.college,
            total_score=acc.total_score,
            event_count=acc.event_count,
            achievements=tuple(acc.achievements),
        )
        for acc in _take(ranked, limit)
    ]


def aggregate_college_standings(
    entries: Sequence[Any],
    policy: Optional[CollegeKeyPolicy] = None,
    limit: Optional[int] = None,
) -> List[CollegeStanding]:
    """
    Group `entries` with a non-blank college by `policy.key(college)`.

    The displayed college name is the first raw value seen for the group.
    """
    policy = policy or ExactCollegePolicy()
    groups: Dict[str, _CollegeAccumulator] = {}

    for entry in entries:
        college = entry.college
        if not college or not college.strip():
            continue

        group_key = policy.key(college)
        acc = groups.get(group_key)
        if acc is None:
            acc = groups[group_key] = _CollegeAccumulator(display=college)

        acc.total_score += int(entry.score)
        acc.participants.add(entry.user_id)
        acc.events.add(entry.event_id)

    ranked = sorted(groups.values(), key=lambda acc: -acc.total_score)

    return [
        CollegeStanding(
            college=acc.display,
            total_score=acc.total_score,
            participant_count=len(acc.participants),
            event_count=len(acc.events),
        )
        for acc in _take(ranked, limit)
    ]


# ============================================================================
# Service
# ============================================================================


class AggregationService(BaseService):
    """Runs the cross-event aggregations with configured limits and policy."""

    def __init__(
        self,
        config_manager: type[ConfigManager],
        logger: Optional[Logger] = None,
        repository: Optional[ScoreEntryRepository] = None,
    ) -> None:
        super().__init__(config_manager, None, logger or get_logger(__name__))
        self._repository = repository or ScoreEntryRepository()

    async def get_top_performers(self) -> List[TopPerformer]:
        limit = self.get_int_config("leaderboard.top_performers_limit", 20)

        async with DatabaseService.get_session() as session:
            user_ids = await self._repository.top_user_ids(session, limit)
            entries = await self._repository.entries_for_users(session, user_ids)

        performers = aggregate_top_performers(entries, limit=limit)

        self.log.debug(
            "Top performers computed",
            extra={"entry_count": len(entries), "returned": len(performers)},
        )
        return performers

    async def get_college_leaderboard(self) -> List[CollegeStanding]:
        limit = self.get_int_config("leaderboard.college_limit", 20)
        policy = get_college_policy(self.get_config("leaderboard.college_policy", "exact"))

        async with DatabaseService.get_session() as session:
            if policy.name == ExactCollegePolicy.name:
                rows = await self._repository.college_totals(session, limit)
                standings = [
                    CollegeStanding(
                        college=row.college,
                        total_score=int(row.total_score),
                        participant_count=int(row.participant_count),
                        event_count=int(row.event_count),
                    )
                    for row in rows
                ]
            else:
                rows = await self._repository.college_rows(session)
                standings = aggregate_college_standings(rows, policy=policy, limit=limit)

        self.log.debug(
            "College standings computed",
            extra={
                "row_count": len(rows),
                "returned": len(standings),
                "college_policy": policy.name,
            },
        )
        return standings
