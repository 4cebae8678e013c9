"""
events/bus.py -- Minimal synchronous publish/subscribe bus.

Handlers receive the payload dict exactly as emitted. They run in
subscription order on the emitter's thread; an exception from a handler
propagates to the emitter and stops later handlers for that event.

Usage:
    bus = EventBus()
    bus.subscribe("auth.password_reset_required", handler)
    bus.emit("auth.password_reset_required", {"email": ..., "url": ..., "token": ...})
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger("stepauth.events")

Handler = Callable[[dict], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._handlers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        if handler in self._handlers.get(topic, []):
            self._handlers[topic].remove(handler)

    def subscribers(self, topic: str) -> list[Handler]:
        return list(self._handlers.get(topic, []))

    def emit(self, topic: str, payload: dict) -> int:
        """Deliver payload to every subscriber of topic. Returns the handler count.

        Only the topic is logged -- payloads may carry tokens.
        """
        handlers = self.subscribers(topic)
        logger.info("Event %s -> %d handler(s)", topic, len(handlers))
        for handler in handlers:
            handler(payload)
        return len(handlers)
