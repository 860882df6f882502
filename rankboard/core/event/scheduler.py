"""
EventScheduler: runs the listeners selected for one publish.

1. CRITICAL listeners, one after another, each under `critical_timeout`.
2. HIGH listeners, one after another, each under `high_timeout`.
3. NORMAL listeners concurrently, awaited together.
4. LOW listeners as background tasks, not awaited.

A failing or timed-out listener is logged and contributes `None`; nothing
escapes to the publisher and the remaining listeners still run.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from rankboard.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    def __init__(self, logger: Logger) -> None:
        self._log = logger
        # Strong references keep fire-and-forget tasks alive until they finish.
        self._background: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        *,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        def tier(priority: ListenerPriority) -> list[EventListener]:
            return [lst for lst in listeners if lst.priority is priority]

        results: list[Any] = []

        for priority, timeout in (
            (ListenerPriority.CRITICAL, critical_timeout),
            (ListenerPriority.HIGH, high_timeout),
        ):
            for listener in tier(priority):
                results.append(await self._run(listener, event_name, payload, timeout))

        normal = tier(ListenerPriority.NORMAL)
        if normal:
            results.extend(
                await asyncio.gather(
                    *(self._run(lst, event_name, payload, None) for lst in normal)
                )
            )

        for listener in tier(ListenerPriority.LOW):
            task = asyncio.get_running_loop().create_task(
                self._run(listener, event_name, payload, None),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return results

    async def _invoke(self, listener: EventListener, payload: EventPayload) -> Any:
        if inspect.iscoroutinefunction(listener.callback):
            return await listener.callback(payload)
        # Plain functions run off the loop.
        return await asyncio.get_running_loop().run_in_executor(
            None, listener.callback, payload
        )

    async def _run(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        context = {
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
        }
        self._log.debug("EventBus: running listener", extra=context)

        try:
            if timeout is not None and timeout > 0:
                return await asyncio.wait_for(self._invoke(listener, payload), timeout)
            return await self._invoke(listener, payload)
        except asyncio.TimeoutError:
            self._log.error(
                "EventBus listener timed out",
                extra={**context, "timeout_seconds": timeout},
            )
        except Exception as exc:
            self._log.error(
                "EventBus listener failed",
                extra={**context, "error": str(exc), "error_type": type(exc).__name__},
                exc_info=exc,
            )
        return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority tasks (shutdown)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
