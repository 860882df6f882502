"""
In-process event bus.

There is no module-level bus instance; construct an `EventBus`
and pass it to the components that need it.
"""

from rankboard.core.event.bus import EventBus
from rankboard.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
