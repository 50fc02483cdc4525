"""
Data Management
===============

Session state and the bridges between Streamlit's synchronous reruns and the
async LMS client. Each bridge opens a fresh client for its own event loop and
closes it afterwards; long-lived objects (status cache, notification feed,
attempt runner) are re-pointed at that client before use.
"""
import asyncio
import logging
from datetime import datetime

import pandas as pd
import streamlit as st

from client.config import Settings
from client.errors import AuthExpiry, LmsError
from client.events import EventBus
from client.lms_client import LmsClient
from resolvers.module_access import resolve_module_access
from runner.attempt_runner import AttemptRunner, RunnerState
from sync.notification_feed import NotificationFeed
from sync.status_cache import StatusCache

logger = logging.getLogger(__name__)


def initialize_session_state(settings: Settings):
    """Initializes page config and session variables."""
    st.set_page_config(page_title="LMS Dash", layout="wide")

    defaults = {
        "settings": settings,
        "token": None,
        "user": None,
        "events": EventBus(),
        "course_data": None,
        "status_cache": None,
        "feed": None,
        "runner": None,
        "last_sync": None,
        "last_auto_refresh": 0,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


async def _with_client(action):
    settings = st.session_state.settings
    client = LmsClient(settings.base_url, timeout=settings.timeout,
                       token=st.session_state.token, events=st.session_state.events)
    try:
        return await action(client)
    finally:
        await client.close()


def run_with_client(action):
    """Runs ``action(client)`` to completion on a fresh event loop."""
    return asyncio.run(_with_client(action))


def report_error(error: LmsError):
    if isinstance(error, AuthExpiry):
        st.session_state.token = None
        st.error("Session expired. Please log in again.")
    else:
        st.error(error.message)


# ==========================================
# AUTH & SYNC
# ==========================================

def login(email, password) -> bool:
    async def action(client):
        ok = await client.login(email, password)
        return ok, client.token, client.user

    ok, token, user = run_with_client(action)
    if ok:
        st.session_state.token = token
        st.session_state.user = user
    return ok


def _status_cache(client) -> StatusCache:
    cache = st.session_state.status_cache
    if cache is None:
        cache = StatusCache(client, poll_interval=st.session_state.settings.poll_interval,
                            events=st.session_state.events)
        st.session_state.status_cache = cache
    cache.client = client
    return cache


async def _load_course(client, course_id, student_id):
    modules, quizzes, attempts = await asyncio.gather(
        client.get_modules(course_id),
        client.get_quizzes(course_id),
        client.get_my_attempts(),
    )

    progress = None
    if student_id:
        try:
            progress = await client.get_student_progress(student_id, course_id)
        except LmsError as e:
            logger.warning("Progress unavailable for %s: %s", student_id, e.message)
    completed = progress.completed_module_ids if progress else []

    module_views = await resolve_module_access(client, course_id, modules, completed)

    cache = _status_cache(client)
    cache.track(q.id for q in quizzes)
    await cache.refresh()

    feed = st.session_state.feed
    if feed is None or feed.course_id != course_id or feed.student_id != student_id:
        feed = NotificationFeed(client, course_id, student_id)
        st.session_state.feed = feed
    feed.client = client
    await feed.fetch()

    return {
        "course_id": course_id,
        "modules": module_views,
        "quizzes": quizzes,
        "attempts": attempts,
        "progress": progress,
    }


def sync_with_lms(course_id, student_id):
    with st.status("Loading course data from the LMS...", expanded=False) as status:
        try:
            data = run_with_client(lambda c: _load_course(c, course_id, student_id))
        except LmsError as e:
            status.update(label=e.message, state="error")
            report_error(e)
            return

        st.session_state.course_data = data
        st.session_state.last_sync = datetime.now().strftime('%H:%M:%S')
        status.update(label="Course data loaded.", state="complete")


def refresh_statuses():
    """Poll tick: refreshes only the cached quiz statuses."""
    cache = st.session_state.status_cache
    if cache is None:
        return

    async def action(client):
        cache.client = client
        await cache.refresh()

    run_with_client(action)
    st.session_state.last_sync = datetime.now().strftime('%H:%M:%S')


# ==========================================
# STUDENT ACTIONS
# ==========================================

def request_extra_attempt(quiz_id, reason=""):
    async def action(client):
        cache = _status_cache(client)
        await cache.request_extra(quiz_id, reason)

    try:
        run_with_client(action)
        st.toast("Extra attempt requested.")
    except LmsError as e:
        report_error(e)


def mark_notification_read(notification_id):
    feed = st.session_state.feed

    async def action(client):
        feed.client = client
        await feed.mark_read(notification_id)

    try:
        run_with_client(action)
    except LmsError as e:
        report_error(e)


def start_quiz(quiz_id):
    async def action(client):
        runner = AttemptRunner(client, quiz_id)
        await runner.load()
        if runner.state is RunnerState.READY:
            runner.begin(run_timer=False)
        return runner

    st.session_state.runner = run_with_client(action)


def submit_quiz():
    runner = st.session_state.runner

    async def action(client):
        runner.client = client
        return await runner.submit()

    run_with_client(action)
    if runner.state is RunnerState.RESULT:
        refresh_after_attempt()


def expire_quiz_if_due() -> bool:
    runner = st.session_state.runner
    if runner is None or runner.state is not RunnerState.IN_PROGRESS:
        return False

    async def action(client):
        runner.client = client
        return await runner.expire_if_due()

    fired = run_with_client(action)
    if fired and runner.state is RunnerState.RESULT:
        refresh_after_attempt()
    return fired


def refresh_after_attempt():
    data = st.session_state.course_data
    if not data:
        return

    async def action(client):
        data["attempts"] = await client.get_my_attempts()
        cache = _status_cache(client)
        await cache.refresh()

    try:
        run_with_client(action)
    except LmsError as e:
        report_error(e)


# ==========================================
# ADMIN ACTIONS
# ==========================================

def load_extra_requests(status="PENDING"):
    try:
        return run_with_client(lambda c: c.list_extra_requests(status))
    except LmsError as e:
        report_error(e)
        return []


def decide_extra_request(request, approve: bool, extra_attempts=1):
    async def action(client):
        _status_cache(client)
        if approve:
            await client.approve_extra_attempt(request, extra_attempts)
        else:
            await client.reject_extra_attempt(request)

    try:
        run_with_client(action)
        st.toast("Request approved." if approve else "Request rejected.")
    except LmsError as e:
        report_error(e)


def set_student_level(student_id, course_id, level, lock):
    try:
        run_with_client(lambda c: c.set_student_level(student_id, course_id, level or None, lock))
    except LmsError as e:
        report_error(e)
        return
    if lock:
        st.success(f"Student level locked to {level}")
    elif level:
        st.success(f"Student level set to {level}")
    else:
        st.success("Level lock removed")


# ==========================================
# TABLES
# ==========================================

def attempts_frame(quizzes, attempts_by_quiz) -> pd.DataFrame:
    rows = []
    titles = {q.id: q for q in quizzes}
    for quiz_id, attempts in attempts_by_quiz.items():
        quiz = titles.get(quiz_id)
        if quiz is None:
            continue
        for idx, attempt in enumerate(attempts, start=1):
            rows.append({
                "Quiz": quiz.title,
                "Attempt": idx,
                "Score": attempt.score,
                "Passing": quiz.passing_score,
                "Passed": attempt.score >= quiz.passing_score,
                "Submitted": attempt.submitted_at,
            })
    return pd.DataFrame(rows, columns=["Quiz", "Attempt", "Score", "Passing", "Passed",
                                       "Submitted"])
