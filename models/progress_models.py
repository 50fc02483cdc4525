"""
Data Models for Course Progress
===============================

Module access decisions, timeline notifications, deadlines and violations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


@dataclass
class Module:
    id: str
    title: str
    order: int = 0
    description: str = ""


@dataclass
class ModuleAccess:
    module_id: str
    has_access: bool
    is_timeline_restricted: bool = False
    reason: Optional[str] = None
    current_accessible_module: Optional[str] = None
    current_accessible_module_index: Optional[int] = None


class ModuleStatus(Enum):
    COMPLETED = "completed"
    TIMELINE_LOCKED = "timeline-locked"
    LOCKED = "locked"
    AVAILABLE = "available"


@dataclass
class ModuleAccessView:
    module: Module
    access: ModuleAccess
    status: ModuleStatus


@dataclass
class TimelineNotification:
    id: str
    type: str
    title: str
    message: str
    is_read: bool = False
    action_required: bool = False
    created_at: Optional[datetime] = None


@dataclass
class Deadline:
    id: str
    module_id: Optional[str]
    module_title: str
    deadline: datetime


@dataclass
class TimelineViolation:
    id: str
    demoted_from_module: str
    violated_at: Optional[datetime] = None


class Urgency(Enum):
    OVERDUE = "overdue"
    CRITICAL = "critical"
    URGENT = "urgent"
    WARNING = "warning"
    NORMAL = "normal"


class FeedKind(Enum):
    NOTIFICATION = "notification"
    DEADLINE = "deadline"
    VIOLATION = "violation"


@dataclass
class FeedItem:
    id: str
    kind: FeedKind
    title: str
    message: str
    timestamp: Optional[datetime] = None
    urgency: Optional[Urgency] = None
    notification_type: Optional[str] = None
    action_required: bool = False


@dataclass
class StudentProgress:
    student_id: Optional[str]
    course_id: Optional[str]
    current_level: Optional[str] = None
    level_lock_enabled: bool = False
    locked_level: Optional[str] = None
    completed_module_ids: List[str] = field(default_factory=list)
    progress_percent: float = 0.0
    timeline_violations: List[TimelineViolation] = field(default_factory=list)
    upcoming_deadlines: List[Deadline] = field(default_factory=list)
