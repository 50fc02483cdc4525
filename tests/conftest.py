import asyncio

import pytest

from client.errors import LmsError, NetworkFailure
from client.events import EventBus
from models.progress_models import ModuleAccess
from models.quiz_models import QuizAttempt, QuizServerStatus


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeClient:
    """Stands in for LmsClient; responses are set per test."""

    def __init__(self):
        self.events = EventBus()
        self.statuses = {}
        self.status_calls = []
        self.access = {}
        self.start_info = None
        self.start_error = None
        self.submit_results = []
        self.submissions = []
        self.extra_requests = []
        self.notifications = []
        self.notifications_error = None
        self.progress = None
        self.progress_error = None
        self.read_calls = []

    async def get_quiz_statuses(self, quiz_ids):
        self.status_calls.append(list(quiz_ids))
        results = {}
        for quiz_id in quiz_ids:
            value = self.statuses.get(quiz_id)
            if value is None:
                value = NetworkFailure()
            results[quiz_id] = value
        return results

    async def get_timeline_access(self, course_id, module_id):
        value = self.access.get(module_id)
        if isinstance(value, LmsError):
            raise value
        if value is None:
            raise NetworkFailure()
        return value

    async def start_quiz(self, quiz_id):
        if self.start_error:
            raise self.start_error
        return self.start_info

    async def submit_quiz(self, quiz_id, answers, time_taken):
        self.submissions.append((quiz_id, list(answers), time_taken))
        outcome = self.submit_results.pop(0)
        if isinstance(outcome, LmsError):
            raise outcome
        return outcome

    async def request_extra_attempt(self, quiz_id, reason=""):
        self.extra_requests.append((quiz_id, reason))
        return {"quiz_id": quiz_id}

    async def get_timeline_notifications(self, course_id):
        if self.notifications_error:
            raise self.notifications_error
        return self.notifications

    async def get_student_progress(self, student_id, course_id=None):
        if self.progress_error:
            raise self.progress_error
        return self.progress

    async def mark_notification_read(self, course_id, notification_id):
        self.read_calls.append((course_id, notification_id))


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def fake_clock():
    return FakeClock()


def make_attempts(quiz_id, *scores):
    return [QuizAttempt(id=f"a{i}", quiz_id=quiz_id, score=s) for i, s in enumerate(scores)]


def make_status(quiz_id, allowed=2, used=1, can_attempt=True, remaining=None):
    if remaining is None:
        remaining = float("inf") if allowed == 0 else max(allowed - used, 0)
    return QuizServerStatus(quiz_id=quiz_id, attempts_allowed=allowed, attempts_used=used,
                            attempts_remaining=remaining, can_attempt=can_attempt)


def open_access(module_id):
    return ModuleAccess(module_id=module_id, has_access=True)
