"""
LeaderboardService: per-event reads.

- `get_event_leaderboard(event_id)`: the top of an event with positional
  display ranks (ties get distinct ranks, insertion order breaks them).
- `get_participant_rank(event_id, user_id)`: one participant with a freshly
  computed count-based rank (ties share a rank).

Reads use a plain session and never block writers; results may trail an
in-flight update.
"""

from __future__ import annotations

from logging import Logger
from typing import List, Optional

from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.service import DatabaseService
from rankboard.core.logging.logger import get_logger
from rankboard.core.validation.input_validator import InputValidator
from rankboard.modules.leaderboard.ranking import (
    assign_display_ranks,
    rank_from_higher_count,
)
from rankboard.modules.leaderboard.repository import ScoreEntryRepository
from rankboard.modules.leaderboard.views import ScoreEntryView
from rankboard.modules.shared.base_service import BaseService
from rankboard.modules.shared.exceptions import NotFoundError

PARTICIPANT_NOT_FOUND_MESSAGE = "No score found for this participant in this event"


class LeaderboardService(BaseService):
    def __init__(
        self,
        config_manager: type[ConfigManager],
        logger: Optional[Logger] = None,
        repository: Optional[ScoreEntryRepository] = None,
    ) -> None:
        super().__init__(config_manager, None, logger or get_logger(__name__))
        self._repository = repository or ScoreEntryRepository()

    async def get_event_leaderboard(self, event_id: str) -> List[ScoreEntryView]:
        event_id = InputValidator.validate_identifier(event_id, "eventId")
        limit = self.get_int_config("leaderboard.event_limit", 100)

        async with DatabaseService.get_session() as session:
            entries = await self._repository.top_for_event(session, event_id, limit)

        ranked = assign_display_ranks(entries, limit=limit)

        self.log.debug(
            "Event leaderboard loaded",
            extra={"event_id": event_id, "returned": len(ranked), "limit": limit},
        )
        return ranked

    async def get_participant_rank(self, event_id: str, user_id: str) -> ScoreEntryView:
        """
        Raises
        ------
        NotFoundError
            When the participant has no entry in the event.
        """
        event_id = InputValidator.validate_identifier(event_id, "eventId")
        user_id = InputValidator.validate_identifier(user_id, "userId")

        async with DatabaseService.get_session() as session:
            entry = await self._repository.get_for_key(session, event_id, user_id)
            if entry is None:
                raise NotFoundError(
                    "ScoreEntry",
                    f"{event_id}/{user_id}",
                    message=PARTICIPANT_NOT_FOUND_MESSAGE,
                )
            higher = await self._repository.count_higher(session, event_id, entry.score)

        return ScoreEntryView.from_model(entry, rank=rank_from_higher_count(higher))
