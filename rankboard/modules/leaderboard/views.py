"""
Read models returned by leaderboard services.

These are plain frozen dataclasses; the HTTP layer converts them to
camelCase pydantic schemas. None of them is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional, Tuple


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class ScoreEntryView:
    event_id: str
    user_id: str
    user_name: str
    score: int
    rank: int
    college: str = ""
    achievements: Tuple[str, ...] = ()
    last_updated: Optional[datetime] = None

    @classmethod
    def from_model(cls, entry: Any, rank: Optional[int] = None) -> ScoreEntryView:
        """Snapshot an ORM `ScoreEntry`; `rank` overrides the cached column."""
        return cls(
            event_id=entry.event_id,
            user_id=entry.user_id,
            user_name=entry.user_name,
            score=int(entry.score),
            rank=int(entry.rank if rank is None else rank),
            college=entry.college or "",
            achievements=tuple(entry.achievements or ()),
            last_updated=_as_utc(entry.last_updated),
        )

    def with_rank(self, rank: int) -> ScoreEntryView:
        return replace(self, rank=rank)

    def to_event_payload(self) -> dict[str, Any]:
        """Payload published as `leaderboard.score_updated`."""
        return {
            "eventId": self.event_id,
            "userId": self.user_id,
            "score": self.score,
            "rank": self.rank,
            "achievements": list(self.achievements),
        }


@dataclass(frozen=True, slots=True)
class TopPerformer:
    user_id: str
    user_name: str
    college: str
    total_score: int
    event_count: int
    achievements: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class CollegeStanding:
    college: str
    total_score: int
    participant_count: int
    event_count: int
