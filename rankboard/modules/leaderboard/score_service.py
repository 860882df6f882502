"""
ScoreUpdateService: the only writer of the score ledger.

Purpose
-------
Apply an additive score update for one (event, participant) pair, creating
the entry on first contact, then notify live subscribers.

Update Rules
------------
- Input is validated before any storage access.
- Blank `user_name` and `college` values count as absent. Non-blank colleges
  are stored verbatim.
- New entry: `user_name` is required. The home college is the college of
  the participant's earliest entry that has one; only when there is none
  does the supplied `college` apply (else empty). Score starts at `points`
  (or 0) and achievements are deduplicated.
- Existing entry: `points` is added, unseen achievements are appended and
  `last_updated` is refreshed. `user_name` and `college` are ignored.
- The cached rank is recomputed as `1 + count(higher scores in the event)`.

Concurrency
-----------
Updates to the same key are serialized by:

1. `KeyedLockRegistry` within the process,
2. across processes, `SELECT ... FOR UPDATE` on PostgreSQL and a
   `BEGIN IMMEDIATE` write transaction on SQLite (see `DatabaseService`),
3. conflict retry for first-time inserts: a unique-constraint violation is
   surfaced as `ConflictError`, which `DatabaseRetryPolicy` treats as
   retriable; the retried transaction then sees the winner's row and takes
   the existing-entry path.

Different keys never contend on the same in-process lock.

Notification
------------
After commit, `leaderboard.score_updated` is published on the injected bus
while the key is still held, so subscribers observe a key's updates in
commit order. Publishing never fails the update.
"""

from __future__ import annotations

from logging import Logger
from typing import Any, List, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.base import utc_now
from rankboard.core.database.retry_policy import DatabaseRetryPolicy
from rankboard.core.database.service import DatabaseService
from rankboard.core.event.bus import EventBus
from rankboard.core.exceptions import DatabaseError
from rankboard.core.logging.logger import get_logger
from rankboard.core.validation.input_validator import InputValidator
from rankboard.database.models.score_entry import ScoreEntry
from rankboard.modules.leaderboard.aggregation import merge_achievements
from rankboard.modules.leaderboard.locks import KeyedLockRegistry
from rankboard.modules.leaderboard.ranking import rank_from_higher_count
from rankboard.modules.leaderboard.repository import ScoreEntryRepository
from rankboard.modules.leaderboard.views import ScoreEntryView
from rankboard.modules.shared.base_service import BaseService
from rankboard.modules.shared.exceptions import ConflictError, ValidationError

SCORE_UPDATED_EVENT = "leaderboard.score_updated"

USER_NAME_REQUIRED_MESSAGE = "userName is required when creating a new score entry"

MAX_ID_LENGTH = 64
MAX_USER_NAME_LENGTH = 100
MAX_COLLEGE_LENGTH = 200
MAX_ACHIEVEMENT_LENGTH = 100


class ScoreUpdateService(BaseService):
    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: Optional[EventBus],
        logger: Optional[Logger] = None,
        repository: Optional[ScoreEntryRepository] = None,
        lock_registry: Optional[KeyedLockRegistry] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._repository = repository or ScoreEntryRepository()
        self._locks = lock_registry or KeyedLockRegistry()
        self._retry = retry_policy or DatabaseRetryPolicy.from_config(
            retriable_exceptions=(ConflictError, OperationalError)
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def apply_score_update(
        self,
        event_id: str,
        user_id: str,
        points: Optional[int] = None,
        achievements: Optional[List[str]] = None,
        user_name: Optional[str] = None,
        college: Optional[str] = None,
    ) -> ScoreEntryView:
        """
        Add `points` and `achievements` to a participant's entry.

        Returns the entry as committed, with its recomputed cached rank.

        Raises
        ------
        ValidationError
            Invalid input, or a new entry without `user_name`.
        ConflictError
            Concurrent inserts kept colliding after all retries.
        """
        event_id = InputValidator.validate_identifier(event_id, "eventId", MAX_ID_LENGTH)
        user_id = InputValidator.validate_identifier(user_id, "userId", MAX_ID_LENGTH)

        if points is not None:
            points = InputValidator.validate_non_negative_integer(
                points,
                "points",
                max_value=self.get_int_config(
                    "leaderboard.max_points_per_update", 1_000_000
                ),
            )

        if achievements is not None:
            achievements = InputValidator.validate_string_list(
                achievements,
                "achievements",
                max_count=self.get_int_config(
                    "leaderboard.max_achievements_per_update", 50
                ),
                max_item_length=MAX_ACHIEVEMENT_LENGTH,
            )

        if user_name is not None:
            user_name = (
                InputValidator.validate_string(
                    user_name, "userName", max_length=MAX_USER_NAME_LENGTH
                )
                or None
            )

        if college is not None:
            college = InputValidator.validate_string(
                college, "college", max_length=MAX_COLLEGE_LENGTH, strip=False
            )
            if not college.strip():
                college = None

        async with self._locks.hold((event_id, user_id)):
            try:
                view = await self._retry.execute(
                    lambda: self._apply_in_transaction(
                        event_id=event_id,
                        user_id=user_id,
                        points=points,
                        achievements=achievements,
                        user_name=user_name,
                        college=college,
                    ),
                    operation_name="leaderboard.apply_score_update",
                    context={"event_id": event_id, "user_id": user_id},
                )
            except DBAPIError as exc:
                raise DatabaseError("apply_score_update", exc) from exc

            self.log_operation(
                "apply_score_update",
                event_id=event_id,
                user_id=user_id,
                points=points,
                score=view.score,
                rank=view.rank,
            )

            await self.emit_event(SCORE_UPDATED_EVENT, view.to_event_payload())

        return view

    # =========================================================================
    # TRANSACTION
    # =========================================================================

    async def _apply_in_transaction(
        self,
        *,
        event_id: str,
        user_id: str,
        points: Optional[int],
        achievements: Optional[List[str]],
        user_name: Optional[str],
        college: Optional[str],
    ) -> ScoreEntryView:
        async with DatabaseService.get_transaction() as session:
            entry = await self._repository.get_for_key(
                session, event_id, user_id, for_update=True
            )

            if entry is None:
                entry = await self._create_entry(
                    session,
                    event_id=event_id,
                    user_id=user_id,
                    points=points,
                    achievements=achievements,
                    user_name=user_name,
                    college=college,
                )
            else:
                if points:
                    entry.score = entry.score + points
                if achievements:
                    entry.achievements = merge_achievements(
                        entry.achievements or [], achievements
                    )
                entry.last_updated = utc_now()
                await self._repository.flush(session)

            higher = await self._repository.count_higher(session, event_id, entry.score)
            entry.rank = rank_from_higher_count(higher)

            view = ScoreEntryView.from_model(entry)

        return view

    async def _create_entry(
        self,
        session: Any,
        *,
        event_id: str,
        user_id: str,
        points: Optional[int],
        achievements: Optional[List[str]],
        user_name: Optional[str],
        college: Optional[str],
    ) -> ScoreEntry:
        if user_name is None:
            raise ValidationError("userName", USER_NAME_REQUIRED_MESSAGE)

        home_college = await self._repository.first_college_for_user(session, user_id)
        resolved_college = home_college or college or ""

        if home_college and college and college != home_college:
            self.log.info(
                "Supplied college ignored in favour of home college",
                extra={
                    "event_id": event_id,
                    "user_id": user_id,
                    "home_college": home_college,
                    "supplied_college": college,
                },
            )

        entry = ScoreEntry(
            event_id=event_id,
            user_id=user_id,
            user_name=user_name,
            score=points or 0,
            achievements=merge_achievements([], achievements or []),
            college=resolved_college,
            rank=0,
            last_updated=utc_now(),
        )

        try:
            await self._repository.create(session, entry)
        except IntegrityError as exc:
            raise ConflictError("ScoreEntry", f"{event_id}/{user_id}") from exc

        return entry
