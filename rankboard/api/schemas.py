"""
HTTP request and response models.

Field names are snake_case in Python and camelCase on the wire
(`eventId`, `userName`, `totalScore`, ...). Responses keep the
`{"success": ..., "count": ..., "data": ...}` envelope.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr
from pydantic.alias_generators import to_camel

from rankboard.modules.leaderboard.views import (
    CollegeStanding,
    ScoreEntryView,
    TopPerformer,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================


class ScoreUpdateRequest(CamelModel):
    """
    Body of `PUT /event/{eventId}/user/{userId}`.

    Every field is optional. `userName` is required only when the entry does
    not exist yet; `userName` and `college` are ignored for existing entries.
    Range checks (non-negative points, list sizes) are enforced by the
    update service so the messages match regardless of entry point.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    points: Optional[StrictInt] = None
    achievements: Optional[List[StrictStr]] = None
    user_name: Optional[StrictStr] = None
    college: Optional[StrictStr] = None


# ============================================================================
# Resources
# ============================================================================


class ScoreEntryOut(CamelModel):
    event_id: str
    user_id: str
    user_name: str
    score: int
    rank: int
    college: str
    achievements: List[str]
    last_updated: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: ScoreEntryView) -> ScoreEntryOut:
        return cls(
            event_id=view.event_id,
            user_id=view.user_id,
            user_name=view.user_name,
            score=view.score,
            rank=view.rank,
            college=view.college,
            achievements=list(view.achievements),
            last_updated=view.last_updated,
        )


class TopPerformerOut(CamelModel):
    user_id: str
    user_name: str
    college: str
    total_score: int
    event_count: int
    achievements: List[str]

    @classmethod
    def from_view(cls, view: TopPerformer) -> TopPerformerOut:
        return cls(
            user_id=view.user_id,
            user_name=view.user_name,
            college=view.college,
            total_score=view.total_score,
            event_count=view.event_count,
            achievements=list(view.achievements),
        )


class CollegeStandingOut(CamelModel):
    college: str
    total_score: int
    participant_count: int
    event_count: int

    @classmethod
    def from_view(cls, view: CollegeStanding) -> CollegeStandingOut:
        return cls(
            college=view.college,
            total_score=view.total_score,
            participant_count=view.participant_count,
            event_count=view.event_count,
        )


# ============================================================================
# Envelopes
# ============================================================================


class EventLeaderboardResponse(CamelModel):
    success: bool = True
    count: int
    data: List[ScoreEntryOut]


class ParticipantScoreResponse(CamelModel):
    success: bool = True
    data: ScoreEntryOut


class ScoreUpdateResponse(CamelModel):
    success: bool = True
    message: str
    data: ScoreEntryOut


class TopPerformersResponse(CamelModel):
    success: bool = True
    count: int
    data: List[TopPerformerOut]


class CollegeLeaderboardResponse(CamelModel):
    success: bool = True
    count: int
    data: List[CollegeStandingOut]


class HealthResponse(CamelModel):
    status: str
    database: bool
    version: str
