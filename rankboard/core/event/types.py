"""
Types shared by the event bus.

Priority tiers
--------------
CRITICAL and HIGH listeners are awaited one at a time, each under its own
timeout. NORMAL listeners are awaited together. LOW listeners run as
background tasks. The realtime hub subscribes at HIGH, so a slow socket
delays a score update response by at most the HIGH timeout.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# JSON-serializable; score update payloads are forwarded to websocket clients as-is.
EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    """Lower values run earlier."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


def callback_name(callback: CallbackType) -> str:
    module = getattr(callback, "__module__", None) or "unknown"
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "callback")
    return f"{module}.{name}"


@dataclass(frozen=True, slots=True)
class EventListener:
    """
    A registered callback.

    ``pattern`` is the event name or wildcard it was subscribed under;
    ``once`` listeners are removed the first time they are selected.
    """

    pattern: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def create(
        cls,
        pattern: str,
        callback: CallbackType,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> "EventListener":
        return cls(
            pattern=pattern,
            callback=callback,
            priority=priority,
            identifier=identifier or f"{callback_name(callback)}@{pattern}",
            once=once,
        )

    @property
    def order(self) -> tuple[int, str]:
        return (self.priority.value, self.identifier)
