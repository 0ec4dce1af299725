"""State-change notifications.

The engine delivers no messages itself. Front ends register async handlers
and render whatever they like when a watch changes state.

Example:
    events = WatchEvents()

    @events.on(EventKind.VERDICT_REACHED)
    async def announce(event):
        await post_verdict(event.watch)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ratwatch.watches.lifecycle import Effect
from ratwatch.watches.types import Watch

logger = logging.getLogger(__name__)


class EventKind(Enum):
    WATCH_CREATED = "watch_created"
    VOTING_OPENED = "voting_opened"
    VERDICT_REACHED = "verdict_reached"
    WATCH_CLEARED = "watch_cleared"
    WATCH_CANCELLED = "watch_cancelled"
    WATCH_EXPIRED = "watch_expired"


EFFECT_EVENTS: dict[Effect, EventKind] = {
    Effect.VOTING_OPENED: EventKind.VOTING_OPENED,
    Effect.VERDICT_REACHED: EventKind.VERDICT_REACHED,
    Effect.WATCH_EXPIRED: EventKind.WATCH_EXPIRED,
}


@dataclass
class WatchEvent:
    kind: EventKind
    watch: Watch
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


WatchEventHandler = Callable[[WatchEvent], Awaitable[None]]


class WatchEvents:
    """Registry of async handlers keyed by event kind."""

    def __init__(self) -> None:
        self._handlers: dict[EventKind | None, list[WatchEventHandler]] = {}

    def on(
        self, kind: EventKind | None = None
    ) -> Callable[[WatchEventHandler], WatchEventHandler]:
        """Decorator to register a handler. No kind means every event."""

        def decorator(handler: WatchEventHandler) -> WatchEventHandler:
            self.add_handler(handler, kind)
            return handler

        return decorator

    def add_handler(
        self, handler: WatchEventHandler, kind: EventKind | None = None
    ) -> None:
        self._handlers.setdefault(kind, []).append(handler)

    def handlers_for(self, kind: EventKind) -> list[WatchEventHandler]:
        return [*self._handlers.get(kind, []), *self._handlers.get(None, [])]

    async def emit(self, event: WatchEvent) -> None:
        """Invoke handlers; a failing handler is logged and does not stop the rest."""
        for handler in self.handlers_for(event.kind):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "watch_event_handler_error",
                    extra={
                        "event.kind": event.kind.value,
                        "watch.id": event.watch.id,
                        "error.message": str(e),
                    },
                )
