"""
UI
==

This module implements the dashboard UI. Rendering only: every decision is
taken by the resolvers, the status cache, the notification feed or the
attempt runner.
"""

from datetime import datetime

import plotly.express as px
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from client.config import Settings
from dashboard.data_management import (attempts_frame, decide_extra_request, expire_quiz_if_due,
                                       initialize_session_state, load_extra_requests, login,
                                       mark_notification_read, refresh_statuses,
                                       request_extra_attempt, set_student_level, start_quiz,
                                       submit_quiz, sync_with_lms)
from models.progress_models import FeedKind, ModuleStatus, Urgency
from models.quiz_models import QuizStatus
from resolvers.module_access import blocked_click_message, current_accessible
from runner.attempt_runner import RunnerState, format_time


MODULE_BADGES = {
    ModuleStatus.COMPLETED: ("✅", "Completed"),
    ModuleStatus.TIMELINE_LOCKED: ("⏰", "Timeline Restricted"),
    ModuleStatus.LOCKED: ("🔒", "Locked"),
    ModuleStatus.AVAILABLE: ("🔓", "Available"),
}

QUIZ_BADGES = {
    QuizStatus.LOCKED: "🔒",
    QuizStatus.NOT_ATTEMPTED: "📊",
    QuizStatus.PASSED_NO_ATTEMPTS: "✅",
    QuizStatus.FAILED_CAN_RETAKE: "⚠️",
    QuizStatus.NO_ATTEMPTS_LEFT: "⛔",
    QuizStatus.REJECTED: "❌",
}

URGENCY_BADGES = {
    Urgency.OVERDUE: "🔴",
    Urgency.CRITICAL: "🔴",
    Urgency.URGENT: "🟠",
    Urgency.WARNING: "🟡",
    Urgency.NORMAL: "🟢",
}

NOTIFICATION_ICONS = {
    "DEADLINE_WARNING": "⚠️",
    "DEADLINE_OVERDUE": "❗",
    "DEMOTION": "📉",
    "MODULE_UNLOCKED": "✅",
}


def render_sidebar(settings: Settings):
    with st.sidebar:
        st.title("🎓 LMS Dash")
        st.header("Connection")
        email = st.text_input("Email", value=settings.email)
        pw = st.text_input("Password", type="password", value=settings.password)
        if st.button("🔑 Log in"):
            if login(email, pw):
                st.success("Logged in.")
            else:
                st.error("Login failed! Verify your email and password.")

        st.divider()
        st.subheader("Course")
        course_id = st.text_input("Course ID", value=settings.course_id)
        student_id = st.text_input("Student ID", value=settings.student_id)

        st.divider()
        st.subheader("Update Settings")
        enable_auto_sync = st.checkbox("Enable status polling", value=True)

        if enable_auto_sync and st.session_state.course_data:
            refresh_count = st_autorefresh(interval=int(settings.poll_interval * 1000),
                                           key="lms_status_poll")
            if refresh_count > st.session_state.last_auto_refresh:
                st.session_state.last_auto_refresh = refresh_count
                refresh_statuses()

        if st.button("🚀 Sync Now"):
            sync_with_lms(course_id, student_id)

    return course_id, student_id


def render_top_indicators(data):
    progress = data["progress"]
    modules = data["modules"]
    completed = sum(1 for v in modules if v.status is ModuleStatus.COMPLETED)
    with st.container():
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Modules", f"{completed}/{len(modules)}")
        c2.metric("Progress", f"{progress.progress_percent:.0f}%" if progress else "-")
        c3.metric("Level", progress.current_level if progress and progress.current_level else "-")
        c4.metric("Last Sync", st.session_state.last_sync)


def render_modules(data):
    views = data["modules"]
    if not views:
        st.info("This course has no modules yet.")
        return

    info = current_accessible(views)
    if info is not None:
        st.info(f"Current accessible module: {info.current_accessible_module} "
                f"(Module {info.current_accessible_module_index})")

    for idx, view in enumerate(views, start=1):
        icon, label = MODULE_BADGES[view.status]
        with st.container(border=True):
            c1, c2 = st.columns([4, 1])
            c1.markdown(f"**Module {idx}: {view.module.title}**  \n{icon} {label}")
            if view.module.description:
                c1.caption(view.module.description)
            if view.status is ModuleStatus.TIMELINE_LOCKED and view.access.reason:
                c1.caption(view.access.reason)
            if c2.button("Open", key=f"open_module_{view.module.id}"):
                message = blocked_click_message(view.access)
                if message:
                    st.toast(message)
                else:
                    st.session_state.open_module = view.module.id


def render_quizzes(data):
    cache = st.session_state.status_cache
    quizzes = data["quizzes"]
    if not quizzes:
        st.info("No quizzes in this course.")
        return

    completed = {v.module.id for v in data["modules"] if v.status is ModuleStatus.COMPLETED}
    available = {v.module.id for v in data["modules"] if v.status is ModuleStatus.AVAILABLE}

    for quiz in quizzes:
        attempts = data["attempts"].get(quiz.id, [])
        unlocked = quiz.module_id is None or quiz.module_id in completed | available
        status = cache.view(quiz, attempts, unlocked=unlocked)

        with st.container(border=True):
            st.markdown(f"**{quiz.title}**")
            st.caption(f"{QUIZ_BADGES[status.status]} {status.message}")
            c1, c2, c3, c4 = st.columns(4)
            c1.write(f"Questions: {len(quiz.questions)}")
            c2.write(f"Passing: {quiz.passing_score:g}%")
            c3.write(f"Time: {quiz.time_limit or '-'} min")
            c4.write(f"Left: {status.attempts_left_label}")

            if status.button_text:
                if st.button(status.button_text, key=f"quiz_btn_{quiz.id}",
                             disabled=status.button_disabled):
                    if status.can_start:
                        start_quiz(quiz.id)
                        st.rerun()
                    else:
                        st.toast(status.message)

            if status.can_request_extra:
                reason = st.text_input("Reason", key=f"extra_reason_{quiz.id}")
                if st.button("🙋 Request one more attempt", key=f"extra_btn_{quiz.id}"):
                    request_extra_attempt(quiz.id, reason)
                    st.rerun()
            elif quiz.id in cache.hints.pending:
                st.caption("Extra attempt request pending approval.")


def render_attempt_chart(data):
    df = attempts_frame(data["quizzes"], data["attempts"])
    if df.empty:
        return
    with st.expander("📈 Attempt history", expanded=False):
        fig = px.line(df, x="Attempt", y="Score", color="Quiz", markers=True)
        fig.update_layout(yaxis=dict(range=[0, 100]), height=300,
                          margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig, width="stretch", key="attempt_history")
        st.dataframe(df, width="stretch")


def render_take_quiz():
    runner = st.session_state.runner
    if runner is None:
        return False

    title = runner.quiz.title if runner.quiz else "Quiz"
    st.header(f"📝 {title}")

    if runner.state in (RunnerState.ERROR, RunnerState.INELIGIBLE):
        st.error(runner.error)
        if st.button("⬅️ Back to course"):
            st.session_state.runner = None
            st.rerun()
        return True

    if runner.state is RunnerState.IN_PROGRESS:
        if runner.time_limit_seconds is not None:
            st_autorefresh(interval=1000, key="quiz_timer")
            if expire_quiz_if_due():
                st.rerun()
            st.metric("Time left", format_time(runner.time_remaining()))
        if runner.error:
            st.error(runner.error)

        st.progress(runner.answered_count / max(len(runner.answers), 1),
                    text=f"{runner.answered_count} of {len(runner.answers)} answered")
        for idx, question in enumerate(runner.quiz.questions):
            options = [o.text for o in question.options]
            current = runner.answers[idx]
            choice = st.radio(f"{idx + 1}. {question.text}", options,
                              index=options.index(current) if current in options else None,
                              key=f"q_{runner.quiz_id}_{idx}")
            runner.answer(idx, choice)

        if st.button("📨 Submit Quiz"):
            submit_quiz()
            st.rerun()
        return True

    if runner.state is RunnerState.RESULT:
        result = runner.result
        if result.passed:
            st.success(f"Quiz Passed! {result.score_percent:g}%")
        else:
            st.error(f"Quiz Failed. {result.score_percent:g}%")
        if result.next_module_unlocked:
            st.info("🎉 Congratulations! The next module has been unlocked.")
        if result.level_upgraded:
            st.info(f"🏆 Level Up! You've been promoted to {result.new_level}!")
        used = (f"{result.attempts_used} of Unlimited attempts" if result.attempts_allowed == 0
                else f"{result.attempts_used} of {result.attempts_allowed} attempts")
        st.write(f"Attempts Used: {used}")

        for idx, review in enumerate(result.detailed_answers, start=1):
            mark = "🟢" if review.is_correct else "🔴"
            st.write(f"{mark} {idx}. {review.question} - your answer: {review.selected or '-'}"
                     f" / correct: {review.correct or '-'}")

        c1, c2 = st.columns(2)
        if result.can_retry and not result.passed and c1.button("🔁 Retry"):
            runner.retry(run_timer=False)
            st.rerun()
        if c2.button("⬅️ Back to course"):
            st.session_state.runner = None
            st.rerun()
        return True

    return False


def render_notifications():
    feed = st.session_state.feed
    if feed is None:
        return
    if feed.load_error:
        st.error("Failed to load timeline notifications")

    items, hidden_violations = feed.visible_items(datetime.now().astimezone())
    if not items:
        st.success("No timeline notifications.")
        return

    for item in items:
        with st.container(border=True):
            c1, c2 = st.columns([5, 1])
            if item.kind is FeedKind.NOTIFICATION:
                icon = NOTIFICATION_ICONS.get(item.notification_type, "🔔")
                c1.markdown(f"{icon} **{item.title}**  \n{item.message}")
                if item.action_required and c1.button("Mark as Read", key=f"read_{item.id}"):
                    mark_notification_read(item.id)
                    st.rerun()
            elif item.kind is FeedKind.DEADLINE:
                c1.markdown(f"{URGENCY_BADGES[item.urgency]} **{item.title}**  \n{item.message}"
                            f" ({item.timestamp:%d/%m/%Y})")
            else:
                when = f"{item.timestamp:%d/%m/%Y}" if item.timestamp else ""
                c1.markdown(f"📉 **{item.title}**  \n{item.message} {when}")
            if c2.button("✖", key=f"dismiss_{item.id}"):
                feed.dismiss(item.id)
                st.rerun()

    if hidden_violations:
        st.caption(f"+{hidden_violations} more violations")


def render_admin(course_id):
    st.subheader("Extra attempt requests")
    for request in load_extra_requests():
        with st.container(border=True):
            who = request.student_name or request.student_id
            st.markdown(f"**{who}** - {request.quiz_title or request.quiz_id}")
            if request.reason:
                st.caption(request.reason)
            c1, c2 = st.columns(2)
            if c1.button("Approve", key=f"approve_{request.id}"):
                decide_extra_request(request, approve=True)
                st.rerun()
            if c2.button("Reject", key=f"reject_{request.id}"):
                decide_extra_request(request, approve=False)
                st.rerun()

    st.divider()
    st.subheader("Student level")
    student = st.text_input("Student ID", key="admin_student")
    level = st.selectbox("Level", ["", "L1", "L2", "L3", "L4", "L5"])
    lock = st.checkbox("Lock level against automatic promotion")
    if st.button("Apply level"):
        set_student_level(student, course_id, level, lock)


def run_dashboard(settings: Settings = None):
    initialize_session_state(settings or Settings.from_env())

    course_id, student_id = render_sidebar(st.session_state.settings)

    if render_take_quiz():
        return

    data = st.session_state.course_data
    if not data:
        st.info("Please log in from the sidebar and click 'Sync Now'.")
        return

    render_top_indicators(data)
    tab_modules, tab_quizzes, tab_feed, tab_admin = st.tabs(
        ["📚 Modules", "🏅 Quizzes", "🔔 Notifications", "🛠️ Admin"])
    with tab_modules:
        render_modules(data)
    with tab_quizzes:
        render_quizzes(data)
        render_attempt_chart(data)
    with tab_feed:
        render_notifications()
    with tab_admin:
        render_admin(course_id)
