"""
StatusCache
===========

Per-quiz cache of the server's attempt status, refreshed by polling and by
``attempt-extension-updated`` events.

The server snapshot and the in-session display hints (extra attempt granted,
request rejected, request pending) are kept apart and only merged when a quiz
view is resolved. Responses are applied latest-wins: every refresh takes a
ticket per quiz and a response is dropped if a newer ticket was issued while
it was in flight.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from client.errors import LmsError
from client.events import ATTEMPT_EXTENSION_UPDATED, ExtensionUpdate
from models.quiz_models import Quiz, QuizAttempt, QuizServerStatus, QuizStatusView
from resolvers.quiz_status import resolve_quiz_status

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0


@dataclass
class DisplayHints:
    extra_granted: Set[str] = field(default_factory=set)
    rejected: Set[str] = field(default_factory=set)
    pending: Set[str] = field(default_factory=set)

    def clear(self):
        self.extra_granted.clear()
        self.rejected.clear()
        self.pending.clear()


class StatusCache:
    def __init__(self, client, poll_interval: float = DEFAULT_POLL_INTERVAL, events=None):
        self.client = client
        self.poll_interval = poll_interval
        self.events = events if events is not None else client.events
        self.statuses: Dict[str, QuizServerStatus] = {}
        self.hints = DisplayHints()
        self.quiz_ids: List[str] = []
        self.closed = False
        self._tickets = defaultdict(int)
        self._listeners: List[Callable] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._unsubscribe_events: Optional[Callable] = None

    # Subscriptions

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        """Calls ``listener(cache)`` after every change; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    def _take_ticket(self, quiz_id: str) -> int:
        self._tickets[quiz_id] += 1
        return self._tickets[quiz_id]

    # Refresh

    async def refresh(self, quiz_ids: Optional[Iterable[str]] = None) -> None:
        ids = [str(q) for q in (quiz_ids if quiz_ids is not None else self.quiz_ids)]
        if not ids or self.closed:
            return

        tickets = {q: self._take_ticket(q) for q in ids}
        results = await self.client.get_quiz_statuses(ids)

        if self.closed:
            return

        changed = False
        for quiz_id, result in results.items():
            if self._tickets[quiz_id] != tickets[quiz_id]:
                logger.debug("Dropping stale status for quiz %s", quiz_id)
                continue
            if isinstance(result, LmsError):
                logger.warning("Status refresh failed for quiz %s: %s", quiz_id, result.message)
                continue
            self.statuses[quiz_id] = result
            self.hints.extra_granted.discard(quiz_id)
            changed = True

        if changed:
            self._notify()

    async def _on_extension_update(self, update: ExtensionUpdate) -> None:
        quiz_id = str(update.quiz_id)
        status = update.status.upper()
        if status == "APPROVED":
            self.hints.extra_granted.add(quiz_id)
            self.hints.rejected.discard(quiz_id)
        elif status == "REJECTED":
            self.hints.rejected.add(quiz_id)
        else:
            return
        self.hints.pending.discard(quiz_id)
        # Older in-flight responses must not clear the hint.
        self._take_ticket(quiz_id)
        self._notify()
        await self.refresh([quiz_id])

    async def request_extra(self, quiz_id: str, reason: str = ""):
        request = await self.client.request_extra_attempt(quiz_id, reason)
        self.hints.pending.add(str(quiz_id))
        self._notify()
        return request

    # Lifecycle

    def track(self, quiz_ids: Iterable[str]) -> None:
        """Sets the quizzes to keep fresh and listens for extension events."""
        self.closed = False
        self.quiz_ids = [str(q) for q in quiz_ids]
        if self._unsubscribe_events is None:
            self._unsubscribe_events = self.events.subscribe(ATTEMPT_EXTENSION_UPDATED,
                                                             self._on_extension_update)

    async def start(self, quiz_ids: Iterable[str]) -> None:
        """Tracks the quizzes, fetches once and starts polling."""
        self.track(quiz_ids)
        await self.refresh()
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll())

    async def _poll(self) -> None:
        while not self.closed:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except Exception:
                # Keep polling; the next tick retries every tracked quiz.
                logger.exception("Status poll failed")

    async def stop(self) -> None:
        """Stops polling, drops every subscription and discards cached state."""
        self.closed = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._unsubscribe_events is not None:
            self._unsubscribe_events()
            self._unsubscribe_events = None
        self._listeners.clear()
        self.statuses.clear()
        self.hints.clear()

    # Views

    def view(self, quiz: Quiz, attempts: List[QuizAttempt], unlocked: bool = True) -> QuizStatusView:
        quiz_id = str(quiz.id)
        return resolve_quiz_status(
            quiz,
            attempts,
            server_status=self.statuses.get(quiz_id),
            extra_granted=quiz_id in self.hints.extra_granted,
            rejected=quiz_id in self.hints.rejected,
            request_pending=quiz_id in self.hints.pending,
            unlocked=unlocked,
        )
