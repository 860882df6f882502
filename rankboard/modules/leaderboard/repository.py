"""
ScoreEntryRepository: ledger queries.

All methods take an open session; transaction boundaries belong to the
calling service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from sqlalchemy import distinct, func, select

from rankboard.core.logging.logger import get_logger
from rankboard.database.models.score_entry import ScoreEntry
from rankboard.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Row
    from sqlalchemy.ext.asyncio import AsyncSession


def has_college() -> ColumnElement[bool]:
    """Rows whose college is not empty or whitespace."""
    return func.trim(ScoreEntry.college) != ""


class ScoreEntryRepository(BaseRepository[ScoreEntry]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(ScoreEntry, logger or get_logger(__name__))

    async def get_for_key(
        self,
        session: AsyncSession,
        event_id: str,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[ScoreEntry]:
        return await self.find_one_where(
            session,
            ScoreEntry.event_id == event_id,
            ScoreEntry.user_id == user_id,
            for_update=for_update,
        )

    async def count_higher(self, session: AsyncSession, event_id: str, score: int) -> int:
        """Number of entries in `event_id` with a strictly greater score."""
        return await self.count_where(
            session,
            ScoreEntry.event_id == event_id,
            ScoreEntry.score > score,
        )

    async def top_for_event(
        self,
        session: AsyncSession,
        event_id: str,
        limit: int,
    ) -> List[ScoreEntry]:
        """Highest scores first; ties in insertion order."""
        return await self.find_many_where(
            session,
            ScoreEntry.event_id == event_id,
            order_by=[ScoreEntry.score.desc(), ScoreEntry.id.asc()],
            limit=limit,
        )

    async def first_college_for_user(
        self,
        session: AsyncSession,
        user_id: str,
    ) -> Optional[str]:
        """College on the user's earliest entry that has one, if any."""
        stmt = (
            select(ScoreEntry.college)
            .where(ScoreEntry.user_id == user_id, has_college())
            .order_by(ScoreEntry.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def top_user_ids(self, session: AsyncSession, limit: int) -> List[str]:
        """
        Participants with the highest score summed over all events.

        Equal totals keep the order of each participant's first entry.
        """
        stmt = (
            select(ScoreEntry.user_id)
            .group_by(ScoreEntry.user_id)
            .order_by(func.sum(ScoreEntry.score).desc(), func.min(ScoreEntry.id).asc())
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars())

    async def entries_for_users(
        self, session: AsyncSession, user_ids: Sequence[str]
    ) -> List[ScoreEntry]:
        if not user_ids:
            return []
        return await self.find_many_where(
            session,
            ScoreEntry.user_id.in_(list(user_ids)),
            order_by=[ScoreEntry.id.asc()],
        )

    async def college_totals(self, session: AsyncSession, limit: int) -> List[Row[Any]]:
        """
        Per exact college string: `college`, `total_score`,
        `participant_count` and `event_count`, best first.

        Equal totals keep the order in which the college first appeared.
        """
        total = func.sum(ScoreEntry.score).label("total_score")
        stmt = (
            select(
                ScoreEntry.college,
                total,
                func.count(distinct(ScoreEntry.user_id)).label("participant_count"),
                func.count(distinct(ScoreEntry.event_id)).label("event_count"),
            )
            .where(has_college())
            .group_by(ScoreEntry.college)
            .order_by(total.desc(), func.min(ScoreEntry.id).asc())
            .limit(limit)
        )
        return list(await session.execute(stmt))

    async def college_rows(self, session: AsyncSession) -> List[Row[Any]]:
        """`event_id`, `user_id`, `score` and `college` of rows with a college, in insertion order."""
        stmt = (
            select(
                ScoreEntry.event_id,
                ScoreEntry.user_id,
                ScoreEntry.score,
                ScoreEntry.college,
            )
            .where(has_college())
            .order_by(ScoreEntry.id.asc())
        )
        return list(await session.execute(stmt))
