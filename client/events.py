"""
Event Bus
=========

A small publish/subscribe channel shared by the client, the status cache and
the dashboard. Handlers may be plain functions or coroutines.
"""

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

ATTEMPT_EXTENSION_UPDATED = "attempt-extension-updated"


@dataclass(frozen=True)
class ExtensionUpdate:
    quiz_id: str
    # "APPROVED" or "REJECTED", as reported by the server
    status: str


class EventBus:
    def __init__(self):
        self._handlers = defaultdict(list)

    def subscribe(self, topic: str, handler: Callable) -> Callable[[], None]:
        """Registers a handler and returns the matching unsubscribe function."""
        self._handlers[topic].append(handler)

        def unsubscribe():
            if handler in self._handlers[topic]:
                self._handlers[topic].remove(handler)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers[topic])

    async def publish(self, topic: str, payload) -> None:
        logger.debug("publish %s %s", topic, payload)
        for handler in list(self._handlers[topic]):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
