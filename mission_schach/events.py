"""Fire-and-forget event emitter for UI collaborators.

Handlers subscribe by event name (or "*" for everything) and receive the
event name and a payload dict. A failing handler is logged and never
affects the session that emitted the event.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], None]

WILDCARD = "*"


class Events:
    """Event names emitted by the session engine."""

    MISSION_STARTED = "mission-started"
    MISSION_RESET = "mission-reset"
    MISSION_ABORTED = "mission-aborted"
    MISSION_COMPLETED = "mission-completed"
    MOVE_APPLIED = "move-applied"
    GOAL_COMPLETED = "goal-completed"
    GAME_ENDED = "game-ended"
    HINT_SHOWN = "hint-shown"
    SQUARES_HIGHLIGHTED = "squares-highlighted"
    HIGHLIGHTS_CLEARED = "highlights-cleared"
    PLAYBACK_STEP = "playback-step"
    PLAYBACK_COMPLETED = "playback-completed"
    PLAYBACK_FAILED = "playback-failed"


class EventEmitter:
    """Synchronous publish/subscribe by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        """Register a handler for an event name, or WILDCARD for all."""
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Deliver an event to its handlers and the wildcard handlers."""
        payload = payload or {}
        for handler in [*self._handlers.get(event, []), *self._handlers.get(WILDCARD, [])]:
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Handler for %s failed", event)
