"""ORM models. Importing this package registers every table on `Base.metadata`."""

from rankboard.database.models.score_entry import ScoreEntry

__all__ = ["ScoreEntry"]
