"""
Timeline Notification Feed
==========================

Pure helpers that merge timeline notifications, upcoming deadlines and
violation history into one feed, and classify deadline urgency.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from models.progress_models import (Deadline, FeedItem, FeedKind, TimelineNotification,
                                    TimelineViolation, Urgency)


def classify_urgency(deadline: datetime, now: datetime) -> Urgency:
    hours_remaining = (deadline - now).total_seconds() / 3600

    if hours_remaining < 0:
        return Urgency.OVERDUE
    if hours_remaining < 1:
        return Urgency.CRITICAL
    if hours_remaining < 24:
        return Urgency.URGENT
    if hours_remaining < 72:
        return Urgency.WARNING
    return Urgency.NORMAL


def format_time_remaining(deadline: datetime, now: datetime) -> str:
    """Formats the time left as '2d 3h remaining', '5h 10m remaining' or '12m remaining'."""
    total_seconds = int((deadline - now).total_seconds())
    if total_seconds < 0:
        return "Overdue"

    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    if days > 0:
        return f"{days}d {hours}h remaining"
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


def merge_feed(notifications: Iterable[TimelineNotification],
               deadlines: Iterable[Deadline],
               violations: Iterable[TimelineViolation],
               dismissed_ids: Optional[Iterable[str]] = None,
               now: Optional[datetime] = None) -> List[FeedItem]:
    """
    Builds the visible feed. Items are de-duplicated by id (first source wins),
    read or dismissed notifications are hidden and deadlines already past are
    dropped.
    """
    now = now or datetime.now().astimezone()
    dismissed = set(dismissed_ids or [])
    seen = set()
    feed = []

    def add(item: FeedItem):
        if item.id in seen or item.id in dismissed:
            return
        seen.add(item.id)
        feed.append(item)

    for notif in notifications or []:
        if notif.is_read:
            continue
        add(FeedItem(
            id=notif.id,
            kind=FeedKind.NOTIFICATION,
            title=notif.title,
            message=notif.message,
            timestamp=notif.created_at,
            notification_type=notif.type,
            action_required=notif.action_required,
        ))

    for deadline in deadlines or []:
        if deadline.deadline <= now:
            continue
        add(FeedItem(
            id=deadline.id,
            kind=FeedKind.DEADLINE,
            title=deadline.module_title,
            message=format_time_remaining(deadline.deadline, now),
            timestamp=deadline.deadline,
            urgency=classify_urgency(deadline.deadline, now),
        ))

    for violation in violations or []:
        add(FeedItem(
            id=violation.id,
            kind=FeedKind.VIOLATION,
            title=f"Demoted from {violation.demoted_from_module}",
            message="Timeline violation",
            timestamp=violation.violated_at,
        ))

    return feed
