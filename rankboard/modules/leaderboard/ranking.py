"""
Rank calculation.

Two rank notions coexist on purpose:

- **Cached rank** (`cached_rank`): `1 + number of strictly higher scores`
  in the same event. Tied participants share a rank and the next distinct
  score skips ahead (1, 2, 2, 4). This is the value persisted on a
  ScoreEntry after each update and returned by the participant lookup.
- **Display rank** (`assign_display_ranks`): positional `1..N` over the
  leaderboard page ordered by score descending, ties broken by insertion
  order. Tied participants get distinct ranks.

For the same event the two can disagree when scores tie; callers choose
the notion appropriate for their view.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence

from rankboard.modules.leaderboard.views import ScoreEntryView


def rank_from_higher_count(higher_count: int) -> int:
    return int(higher_count) + 1


def cached_rank(score: int, other_scores: Iterable[int]) -> int:
    """
    Count-based rank of `score` among `other_scores`.

    >>> cached_rank(80, [100, 80, 50])
    2
    """
    return rank_from_higher_count(sum(1 for other in other_scores if other > score))


def order_for_display(entries: Sequence[Any]) -> List[Any]:
    """
    Sort by score descending; equal scores keep their input order.

    Input is expected in insertion order (ascending id), which makes the
    stable sort equivalent to `ORDER BY score DESC, id ASC`.
    """
    return sorted(entries, key=lambda entry: -int(entry.score))


def assign_display_ranks(
    entries: Sequence[Any],
    limit: Optional[int] = None,
) -> List[ScoreEntryView]:
    """
    Positional ranks `1..N` over `entries`, truncated to `limit`.

    Accepts ORM rows or `ScoreEntryView` objects.
    """
    ordered = order_for_display(entries)
    if limit is not None:
        ordered = ordered[: max(limit, 0)]

    views: List[ScoreEntryView] = []
    for position, entry in enumerate(ordered, start=1):
        if isinstance(entry, ScoreEntryView):
            views.append(entry.with_rank(position))
        else:
            views.append(ScoreEntryView.from_model(entry, rank=position))
    return views
