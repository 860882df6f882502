"""
EventBus: in-process publish/subscribe.

The score update coordinator publishes ``leaderboard.score_updated`` after
a committed write, and the realtime ChannelHub subscribes and forwards the
payload to websocket clients. Neither imports the other.

The application builds one bus in its lifespan and injects it; there is no
module-level instance. Listener timeouts come from ConfigManager keys
``core.event.listener_timeout.critical_seconds`` and ``.high_seconds``
unless given to the constructor.

>>> bus = EventBus(config_manager=ConfigManager)
>>> bus.subscribe("leaderboard.score_updated", hub.on_score_updated,
...               priority=ListenerPriority.HIGH)
>>> await bus.publish("leaderboard.score_updated", {"eventId": "e1", ...})
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from rankboard.core.config.manager import ConfigManager
from rankboard.core.event.registry import ListenerRegistry
from rankboard.core.event.scheduler import EventScheduler
from rankboard.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
    callback_name,
)
from rankboard.core.logging.logger import bound_log_context, get_logger

logger = get_logger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 5.0


class EventBus:
    """Priority-aware async event bus with wildcard subscriptions."""

    def __init__(
        self,
        config_manager: Optional[type[ConfigManager]] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._registry = ListenerRegistry()
        self._scheduler = EventScheduler(logger)
        self._published_count = 0

        self._critical_timeout = self._timeout("critical", critical_timeout_seconds)
        self._high_timeout = self._timeout("high", high_timeout_seconds)

        logger.info(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    def _timeout(self, tier: str, override: Optional[float]) -> float:
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return _DEFAULT_TIMEOUT_SECONDS

        key = f"core.event.listener_timeout.{tier}_seconds"
        raw = self._config_manager.get(key, _DEFAULT_TIMEOUT_SECONDS)
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "config_value": raw},
            )
            return _DEFAULT_TIMEOUT_SECONDS

    @staticmethod
    def _check_signature(callback: CallbackType) -> None:
        try:
            params = inspect.signature(callback).parameters
        except (TypeError, ValueError):
            return
        if len(params) != 1:
            raise ValueError(
                f"Event listener '{callback_name(callback)}' must take exactly one "
                f"parameter (the payload), got {len(params)}"
            )

    # =========================================================================
    # Subscription
    # =========================================================================

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Register `callback` for `event_name` (wildcards allowed).

        Returns the listener id for `unsubscribe()`. A second subscription
        with the same id and pattern is ignored unless `allow_duplicates`.

        Raises
        ------
        ValueError
            The callback does not take exactly one parameter.
        """
        self._check_signature(callback)
        listener = EventListener.create(event_name, callback, priority, identifier, once)

        if self._registry.add(listener, allow_duplicates=allow_duplicates):
            logger.debug(
                "EventBus: subscribed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": priority.name,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate subscription ignored",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove(event_name, identifier)
        if removed:
            logger.debug(
                "EventBus: unsubscribed",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    # =========================================================================
    # Publishing
    # =========================================================================

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver `data` to every listener matching `event_name`.

        Returns listener results in execution order; LOW-priority listeners
        are not awaited and contribute nothing.
        """
        self._published_count += 1

        event_id = data.get("eventId")
        listeners = self._registry.take_matching(event_name)

        with bound_log_context(
            event_id=None if event_id is None else str(event_id),
            event_name=event_name,
        ):
            logger.debug(
                "EventBus: publishing",
                extra={"event_name": event_name, "listener_count": len(listeners)},
            )
            if not listeners:
                return []

            return await self._scheduler.execute(
                event_name,
                data,
                listeners,
                critical_timeout=self._critical_timeout,
                high_timeout=self._high_timeout,
            )

    async def drain(self) -> None:
        await self._scheduler.drain()

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def published_count(self) -> int:
        return self._published_count

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.count_matching(event_name)
        return len(self._registry)
