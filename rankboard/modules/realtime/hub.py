"""
ChannelHub: per-event live channels for score notifications.

Purpose
-------
Keep track of which connected subscribers follow which event and fan out
`leaderboard.score_updated` notifications to them.

Delivery Semantics
------------------
- At most once: every send is attempted once, bounded by
  `realtime.send_timeout_seconds`. There is no retry and no replay buffer;
  a client that reconnects should reload the leaderboard over HTTP.
- A subscriber whose send fails or times out is dropped from every channel.
- Broadcast failures are logged and never propagate to the publisher.

Subscribers
-----------
Anything with an async `send_json(message)` method qualifies; in the app
these are Starlette `WebSocket` objects.
"""

from __future__ import annotations

import asyncio
from logging import Logger
from typing import Any, Dict, List, Optional, Protocol, Set

from rankboard.core.config.manager import ConfigManager
from rankboard.core.event.bus import EventBus
from rankboard.core.event.types import EventPayload, ListenerPriority
from rankboard.core.logging.logger import get_logger

SCORE_UPDATED_MESSAGE_TYPE = "score-updated"


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class ChannelHub:
    """In-memory channel registry keyed by event id."""

    def __init__(
        self,
        config_manager: Optional[type[ConfigManager]] = None,
        logger: Optional[Logger] = None,
        *,
        send_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config = config_manager
        self.log = logger or get_logger(__name__)
        self._send_timeout_override = send_timeout_seconds
        self._channels: Dict[str, Set[Subscriber]] = {}
        self._listener_id: Optional[str] = None

    # =========================================================================
    # Membership
    # =========================================================================

    @property
    def send_timeout(self) -> float:
        if self._send_timeout_override is not None:
            return float(self._send_timeout_override)
        if self._config is None:
            return 2.0
        try:
            return float(self._config.get("realtime.send_timeout_seconds", 2.0))
        except (TypeError, ValueError):
            return 2.0

    def join(self, subscriber: Subscriber, event_id: str) -> None:
        self._channels.setdefault(str(event_id), set()).add(subscriber)
        self.log.debug(
            "Subscriber joined channel",
            extra={"event_id": str(event_id), "subscribers": self.subscriber_count(event_id)},
        )

    def leave(self, subscriber: Subscriber, event_id: str) -> None:
        key = str(event_id)
        members = self._channels.get(key)
        if not members:
            return
        members.discard(subscriber)
        if not members:
            del self._channels[key]
        self.log.debug(
            "Subscriber left channel",
            extra={"event_id": key, "subscribers": self.subscriber_count(key)},
        )

    def drop(self, subscriber: Subscriber) -> None:
        """Remove `subscriber` from every channel (disconnect)."""
        for key in [k for k, members in self._channels.items() if subscriber in members]:
            self.leave(subscriber, key)

    def subscriber_count(self, event_id: str) -> int:
        return len(self._channels.get(str(event_id), ()))

    def channels(self) -> List[str]:
        return sorted(self._channels)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send(self, subscriber: Subscriber, message: Dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_json(message), timeout=self.send_timeout)
            return True
        except Exception as exc:
            # TimeoutError included: a stalled client is treated as gone.
            self.log.warning(
                "Dropping subscriber after failed send",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    async def broadcast(self, event_id: str, message: Dict[str, Any]) -> int:
        """
        Send `message` to every subscriber of `event_id`.

        Returns the number of successful deliveries.
        """
        members = list(self._channels.get(str(event_id), ()))
        if not members:
            return 0

        outcomes = await asyncio.gather(*(self._send(member, message) for member in members))

        for member, delivered in zip(members, outcomes):
            if not delivered:
                self.drop(member)

        delivered_count = sum(1 for delivered in outcomes if delivered)
        self.log.debug(
            "Broadcast complete",
            extra={
                "event_id": str(event_id),
                "delivered": delivered_count,
                "failed": len(members) - delivered_count,
            },
        )
        return delivered_count

    # =========================================================================
    # Event bus integration
    # =========================================================================

    def attach(self, bus: EventBus, event_name: str = "leaderboard.score_updated") -> str:
        """Subscribe `on_score_updated` to `event_name` on `bus`."""
        self._listener_id = bus.subscribe(
            event_name,
            self.on_score_updated,
            priority=ListenerPriority.HIGH,
        )
        return self._listener_id

    async def on_score_updated(self, payload: EventPayload) -> int:
        event_id = payload.get("eventId")
        if event_id is None:
            self.log.warning(
                "Score update payload without eventId; not broadcast",
                extra={"payload_keys": sorted(payload.keys())},
            )
            return 0

        message = {"type": SCORE_UPDATED_MESSAGE_TYPE, "data": dict(payload)}
        try:
            return await self.broadcast(str(event_id), message)
        except Exception as exc:
            self.log.error(
                "Broadcast failed",
                extra={"event_id": str(event_id), "error": str(exc)},
                exc_info=True,
            )
            return 0
