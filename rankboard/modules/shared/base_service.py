"""
BaseService: shared plumbing for the leaderboard services.

Collaborators arrive through the constructor (the ConfigManager class, an
optional EventBus instance and a logger) so tests can substitute mocks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from rankboard.core.config.manager import ConfigManager
    from rankboard.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: Optional[EventBus],
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """Tunable at `key`; `required=True` raises `ConfigurationError` when it is unset."""
        from rankboard.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if value is None and required:
            raise ConfigurationError(key, f"'{key}' must be configured")
        return value

    def get_int_config(self, key: str, default: int, minimum: int = 0) -> int:
        raw = self.get_config(key, default)
        try:
            return max(int(raw), minimum)
        except (TypeError, ValueError):
            self.log.warning(
                "Tunable is not an integer; falling back",
                extra={"config_key": key, "value": raw, "default": default},
            )
            return default

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish `data` on the injected bus.

        Never raises. Failures are logged as `EventBusError`.
        """
        if self._events is None:
            return

        try:
            await self._events.publish(event_type, data)
        except Exception as exc:
            from rankboard.core.exceptions import EventBusError

            self.log_error(
                "emit_event",
                EventBusError("publish", event_type, exc),
                event_type=event_type,
            )

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(operation, extra={"operation": operation, **context})

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
            exc_info=error,
        )
