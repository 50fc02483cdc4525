"""
NotificationFeed
================

Holds the timeline notifications, deadlines and violations of one student in
one course, plus the locally dismissed ids.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from client.errors import LmsError
from models.progress_models import FeedItem, FeedKind
from resolvers.notifications import merge_feed

logger = logging.getLogger(__name__)

VISIBLE_VIOLATIONS = 3


class NotificationFeed:
    def __init__(self, client, course_id: str, student_id: Optional[str] = None):
        self.client = client
        self.course_id = course_id
        self.student_id = student_id
        self.notifications = []
        self.deadlines = []
        self.violations = []
        self.dismissed = set()
        self.load_error = None

    async def _load_notifications(self):
        return await self.client.get_timeline_notifications(self.course_id)

    async def _load_progress(self):
        if not self.student_id:
            return None
        return await self.client.get_student_progress(self.student_id, self.course_id)

    async def fetch(self) -> None:
        """
        Loads notifications and progress in parallel. A failing progress call
        only empties violations and deadlines; a failing notification call
        empties everything and is reported through ``load_error``.
        """
        notif_res, progress_res = await asyncio.gather(
            self._load_notifications(), self._load_progress(), return_exceptions=True)

        for res in (notif_res, progress_res):
            if isinstance(res, BaseException) and not isinstance(res, LmsError):
                raise res

        if isinstance(notif_res, LmsError):
            logger.warning("Failed to load timeline notifications: %s", notif_res.message)
            self.load_error = notif_res.message
            self.notifications, self.deadlines, self.violations = [], [], []
            return

        self.load_error = None
        self.notifications = notif_res

        if isinstance(progress_res, LmsError):
            logger.warning("Failed to load progress for %s: %s", self.student_id,
                           progress_res.message)
            self.deadlines, self.violations = [], []
        elif progress_res is None:
            self.deadlines, self.violations = [], []
        else:
            self.deadlines = progress_res.upcoming_deadlines
            self.violations = progress_res.timeline_violations

    def dismiss(self, item_id: str) -> None:
        self.dismissed.add(item_id)

    async def mark_read(self, notification_id: str) -> None:
        await self.client.mark_notification_read(self.course_id, notification_id)
        for notif in self.notifications:
            if notif.id == notification_id:
                notif.is_read = True

    def items(self, now: Optional[datetime] = None) -> List[FeedItem]:
        return merge_feed(self.notifications, self.deadlines, self.violations,
                          self.dismissed, now)

    def visible_items(self, now: Optional[datetime] = None):
        """Feed with the violation history capped; returns (items, hidden_violations)."""
        items = self.items(now)
        violations = [i for i in items if i.kind is FeedKind.VIOLATION]
        hidden = violations[VISIBLE_VIOLATIONS:]
        hidden_ids = {i.id for i in hidden}
        return [i for i in items if i.id not in hidden_ids], len(hidden)
