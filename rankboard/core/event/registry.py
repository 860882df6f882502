"""
ListenerRegistry: who listens to which event names.

Patterns are either exact names (``leaderboard.score_updated``) or
shell-style wildcards where ``*`` matches any run of characters
(``leaderboard.*``, ``*.score_updated``, ``*``). Matching is
case-sensitive.

The registry is synchronous. It is only touched from the event loop
thread, so no locking is needed.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from rankboard.core.event.types import EventListener


def pattern_matches(event_name: str, pattern: str) -> bool:
    """
    >>> pattern_matches("leaderboard.score_updated", "leaderboard.*")
    True
    >>> pattern_matches("leaderboard.score_updated", "event.*")
    False
    """
    if "*" not in pattern:
        return event_name == pattern
    return fnmatchcase(event_name, pattern)


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: EventListener, *, allow_duplicates: bool = False) -> bool:
        """Store `listener`; False when the same id is already on the same pattern."""
        if not allow_duplicates and any(
            existing.pattern == listener.pattern
            and existing.identifier == listener.identifier
            for existing in self._listeners
        ):
            return False

        self._listeners.append(listener)
        self._listeners.sort(key=lambda lst: lst.order)
        return True

    def remove(self, pattern: str, identifier: str) -> bool:
        before = len(self._listeners)
        self._listeners = [
            lst
            for lst in self._listeners
            if not (lst.pattern == pattern and lst.identifier == identifier)
        ]
        return len(self._listeners) < before

    def clear(self) -> int:
        removed = len(self._listeners)
        self._listeners = []
        return removed

    def count_matching(self, event_name: str) -> int:
        return sum(1 for lst in self._listeners if pattern_matches(event_name, lst.pattern))

    def take_matching(self, event_name: str) -> list[EventListener]:
        """Listeners for `event_name` in priority order; one-shot listeners are removed."""
        matched = [lst for lst in self._listeners if pattern_matches(event_name, lst.pattern)]
        if any(lst.once for lst in matched):
            spent = {id(lst) for lst in matched if lst.once}
            self._listeners = [lst for lst in self._listeners if id(lst) not in spent]
        return matched
