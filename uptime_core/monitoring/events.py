"""
Notification events.

The engine publishes incident lifecycle events here; an external alert
delivery collaborator subscribes and forwards them. Delivery mechanics
(email, webhook, chat) live outside this package.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

INCIDENT_CREATED = "incident-created"
INCIDENT_RESOLVED = "incident-resolved"
INCIDENT_UPDATED = "incident-updated"

EVENT_NAMES = (INCIDENT_CREATED, INCIDENT_RESOLVED, INCIDENT_UPDATED)

Callback = Callable[[Any], Union[None, Awaitable[None]]]


class EventDispatcher:
    """Fan events out to sync or async subscribers; subscriber errors are logged."""

    def __init__(self):
        self._subscribers: Dict[str, List[Callback]] = defaultdict(list)

    def subscribe(self, event: str, callback: Callback) -> None:
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event '{event}' (expected one of {', '.join(EVENT_NAMES)})")
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callback) -> bool:
        try:
            self._subscribers[event].remove(callback)
            return True
        except ValueError:
            return False

    async def emit(self, event: str, payload: Any) -> None:
        for callback in list(self._subscribers.get(event, ())):
            try:
                outcome = callback(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"[Events] {event} subscriber {getattr(callback, '__name__', callback)} failed: {e}")
