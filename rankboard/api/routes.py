"""
REST routes under `/api/leaderboard`.

| Route                                   | Access            |
|-----------------------------------------|-------------------|
| GET  /event/{eventId}                   | public            |
| GET  /event/{eventId}/user/{userId}     | authenticated     |
| PUT  /event/{eventId}/user/{userId}     | admin, organizer  |
| GET  /top                               | public            |
| GET  /colleges                          | public            |
| GET  /health                            | public            |
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from rankboard.api.dependencies import (
    Identity,
    get_aggregation_service,
    get_identity,
    get_leaderboard_service,
    get_score_update_service,
    require_roles,
)
from rankboard.api.schemas import (
    CollegeLeaderboardResponse,
    CollegeStandingOut,
    EventLeaderboardResponse,
    HealthResponse,
    ParticipantScoreResponse,
    ScoreEntryOut,
    ScoreUpdateRequest,
    ScoreUpdateResponse,
    TopPerformerOut,
    TopPerformersResponse,
)
from rankboard.core.config.config import Config
from rankboard.core.database.service import DatabaseService
from rankboard.core.logging.logger import set_log_context
from rankboard.modules.leaderboard.aggregation import AggregationService
from rankboard.modules.leaderboard.score_service import ScoreUpdateService
from rankboard.modules.leaderboard.service import LeaderboardService

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("/event/{event_id}", response_model=EventLeaderboardResponse)
async def get_event_leaderboard(
    event_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> EventLeaderboardResponse:
    """
    Top entries of an event, highest score first.

    `rank` here is positional: tied scores receive distinct consecutive
    ranks, ordered by who scored first.
    """
    set_log_context(event_id=event_id)
    entries = await service.get_event_leaderboard(event_id)
    return EventLeaderboardResponse(
        count=len(entries),
        data=[ScoreEntryOut.from_view(entry) for entry in entries],
    )


@router.get("/event/{event_id}/user/{user_id}", response_model=ParticipantScoreResponse)
async def get_participant_score(
    event_id: str,
    user_id: str,
    identity: Identity = Depends(get_identity),
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> ParticipantScoreResponse:
    """
    One participant's entry.

    `rank` is count-based: one plus the number of strictly higher scores,
    so tied participants share a rank.
    """
    set_log_context(event_id=event_id)
    entry = await service.get_participant_rank(event_id, user_id)
    return ParticipantScoreResponse(data=ScoreEntryOut.from_view(entry))


@router.put("/event/{event_id}/user/{user_id}", response_model=ScoreUpdateResponse)
async def update_participant_score(
    event_id: str,
    user_id: str,
    body: Optional[ScoreUpdateRequest] = None,
    identity: Identity = Depends(
        require_roles("admin", "organizer", action="update_score")
    ),
    service: ScoreUpdateService = Depends(get_score_update_service),
) -> ScoreUpdateResponse:
    """
    Add points and achievements; creates the entry on first update.

    The returned `rank` is count-based, as in the participant lookup.
    """
    set_log_context(event_id=event_id)
    body = body or ScoreUpdateRequest()

    entry = await service.apply_score_update(
        event_id,
        user_id,
        points=body.points,
        achievements=body.achievements,
        user_name=body.user_name,
        college=body.college,
    )
    return ScoreUpdateResponse(
        message="Score updated successfully",
        data=ScoreEntryOut.from_view(entry),
    )


@router.get("/top", response_model=TopPerformersResponse)
async def get_top_performers(
    service: AggregationService = Depends(get_aggregation_service),
) -> TopPerformersResponse:
    """Participants ranked by their total score across all events."""
    performers = await service.get_top_performers()
    return TopPerformersResponse(
        count=len(performers),
        data=[TopPerformerOut.from_view(performer) for performer in performers],
    )


@router.get("/colleges", response_model=CollegeLeaderboardResponse)
async def get_college_leaderboard(
    service: AggregationService = Depends(get_aggregation_service),
) -> CollegeLeaderboardResponse:
    """Colleges ranked by the summed scores of their participants."""
    standings = await service.get_college_leaderboard()
    return CollegeLeaderboardResponse(
        count=len(standings),
        data=[CollegeStandingOut.from_view(standing) for standing in standings],
    )


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    database_ok = await DatabaseService.health_check()
    return HealthResponse(
        status="ok" if database_ok else "degraded",
        database=database_ok,
        version=Config.SERVICE_VERSION,
    )
