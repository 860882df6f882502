"""
ScoreEntry: one participant's score within one event.

Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column

from rankboard.core.database.base import Base, TimestampMixin, utc_now


class ScoreEntry(Base, TimestampMixin):
    """
    Ledger record for an (event, participant) pair.

    Schema:
    - id (autoincrement; insertion order, used as the tie-breaker)
    - event_id / user_id (unique together)
    - user_name (display name captured at creation)
    - score (non-negative, only ever increased)
    - achievements (JSON list used as an ordered set)
    - college (home college; exact string significant)
    - rank (cached count-based rank, advisory)
    - last_updated (refreshed on every mutation)
    """

    __tablename__ = "score_entries"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_score_entries_event_user"),
        CheckConstraint("score >= 0", name="ck_score_entries_score_non_negative"),
        Index("ix_score_entries_event_score", "event_id", "score"),
        Index("ix_score_entries_user_id", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    achievements: Mapped[List[str]] = mapped_column(
        MutableList.as_mutable(JSON),
        nullable=False,
        default=list,
    )

    college: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    def __repr__(self) -> str:
        return (
            f"<ScoreEntry id={self.id} event={self.event_id!r} "
            f"user={self.user_id!r} score={self.score} rank={self.rank}>"
        )
