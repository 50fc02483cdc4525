"""
JSON Parser Module for LMS Responses
====================================

This module turns the JSON payloads returned by the LMS server into the client's
dataclasses. The server is loose about shapes: ids arrive as ``_id`` or ``id``,
references arrive either as plain ids or as populated objects, and unlimited
quizzes are reported as ``0``, ``null`` or the string ``"Unlimited"`` depending
on the endpoint. All of that is normalised here so the resolvers never see it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from models.progress_models import (Deadline, Module, ModuleAccess, StudentProgress,
                                    TimelineNotification, TimelineViolation)
from models.quiz_models import (DEFAULT_PASSING_SCORE, UNLIMITED, AnswerReview, AttemptResult,
                                ExtraAttemptRequest, ExtraRequestState, Question, Quiz,
                                QuizAttempt, QuizOption, QuizServerStatus, StartInfo)

_REQUEST_STATES = {
    "PENDING": ExtraRequestState.PENDING,
    "APPROVED": ExtraRequestState.GRANTED,
    "GRANTED": ExtraRequestState.GRANTED,
    "REJECTED": ExtraRequestState.REJECTED,
}


def html_to_text(value: Optional[str]) -> str:
    """Strips rich-text markup produced by the course editor."""
    if not value:
        return ""
    if "<" not in value:
        return value.strip()
    return BeautifulSoup(value, "html.parser").get_text(" ", strip=True)


def parse_datetime(value) -> Optional[datetime]:
    """
    Parses ISO-8601 timestamps as sent by the server.
    Example: "2025-12-09T08:10:00.000Z"
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ref_id(value) -> Optional[str]:
    """Returns the id of a reference that may be a plain id or a populated object."""
    if value is None:
        return None
    if isinstance(value, dict):
        found = value.get("_id") or value.get("id")
        return str(found) if found is not None else None
    return str(value)


def _is_unlimited_marker(value) -> bool:
    return value is None or (isinstance(value, str) and value.lower() == "unlimited")


def _number(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_attempts_allowed(value) -> int:
    """``0`` and ``"Unlimited"`` mean unlimited; a missing value means one attempt."""
    if isinstance(value, str) and value.lower() == "unlimited":
        return 0
    if value is None or value == "":
        return 1
    return int(_number(value, 1))


def parse_quiz(data: Dict[str, Any]) -> Quiz:
    questions = []
    for raw in data.get("questions") or []:
        options = [
            QuizOption(text=str(opt.get("text", "")), is_correct=bool(opt.get("isCorrect", False)))
            for opt in raw.get("options") or []
        ]
        questions.append(Question(
            text=html_to_text(raw.get("questionText") or raw.get("text")),
            options=options,
            marks=int(_number(raw.get("marks"), 1)) or 1,
        ))

    time_limit = data.get("timeLimit")
    return Quiz(
        id=ref_id(data) or "",
        title=data.get("title") or "Module Quiz",
        description=html_to_text(data.get("description")),
        module_id=ref_id(data.get("module")),
        passing_score=_number(data.get("passingScore"), DEFAULT_PASSING_SCORE),
        time_limit=int(time_limit) if time_limit else None,
        attempts_allowed=parse_attempts_allowed(data.get("attemptsAllowed")),
        questions=questions,
    )


def parse_attempt(data: Dict[str, Any]) -> Optional[QuizAttempt]:
    quiz_id = ref_id(data.get("quiz"))
    if not quiz_id:
        return None
    score = data.get("scorePercent", data.get("score"))
    return QuizAttempt(
        id=ref_id(data) or "",
        quiz_id=quiz_id,
        score=_number(score),
        submitted_at=parse_datetime(data.get("completedAt") or data.get("createdAt")),
    )


def group_attempts(raw_attempts: List[Dict[str, Any]]) -> Dict[str, List[QuizAttempt]]:
    """Groups attempts per quiz, oldest first."""
    grouped = {}
    parsed = [a for a in (parse_attempt(raw) for raw in raw_attempts or []) if a]
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    parsed.sort(key=lambda a: a.submitted_at or epoch)
    for attempt in parsed:
        grouped.setdefault(attempt.quiz_id, []).append(attempt)
    return grouped


def parse_server_status(quiz_id: str, data: Dict[str, Any]) -> QuizServerStatus:
    attempts_allowed = parse_attempts_allowed(data.get("attemptsAllowed"))
    attempts_used = int(_number(data.get("attemptsUsed"), 0))

    if attempts_allowed == 0:
        remaining = UNLIMITED
    elif _is_unlimited_marker(data.get("attemptsRemaining")):
        remaining = float(max(attempts_allowed - attempts_used, 0))
    else:
        remaining = max(_number(data.get("attemptsRemaining")), 0.0)

    can_attempt = data.get("canAttempt")
    if can_attempt is None:
        can_attempt = remaining > 0

    best = data.get("bestScore")
    return QuizServerStatus(
        quiz_id=quiz_id,
        attempts_allowed=attempts_allowed,
        attempts_used=attempts_used,
        attempts_remaining=remaining,
        can_attempt=bool(can_attempt),
        best_score=_number(best) if best is not None else None,
        has_passed=bool(data.get("hasPassed", False)),
    )


def parse_start(data: Dict[str, Any]) -> StartInfo:
    return StartInfo(
        can_attempt=bool(data.get("canAttempt", False)),
        quiz=parse_quiz(data.get("quiz") or {}),
        reason=data.get("reason"),
    )


def parse_result(data: Dict[str, Any]) -> AttemptResult:
    allowed = parse_attempts_allowed(data.get("attemptsAllowed"))
    remaining_raw = data.get("attemptsRemaining")
    if allowed == 0 or _is_unlimited_marker(remaining_raw):
        remaining = UNLIMITED
    else:
        remaining = _number(remaining_raw)

    reviews = [
        AnswerReview(
            question=html_to_text(item.get("questionText")),
            selected=item.get("userAnswer"),
            correct=item.get("correctAnswer"),
            is_correct=bool(item.get("isCorrect", False)),
        )
        for item in data.get("detailedAnswers") or []
    ]
    return AttemptResult(
        score=_number(data.get("score")),
        score_percent=_number(data.get("scorePercent", data.get("score"))),
        total_marks=_number(data.get("totalMarks")),
        passed=bool(data.get("passed", False)),
        attempts_used=int(_number(data.get("attemptsUsed"), 0)),
        attempts_allowed=allowed,
        attempts_remaining=remaining,
        can_retry=bool(data.get("canRetry", remaining > 0)),
        next_module_unlocked=bool(data.get("nextModuleUnlocked", False)),
        level_upgraded=bool(data.get("levelUpgraded", False)),
        new_level=data.get("newLevel"),
        detailed_answers=reviews,
    )


def parse_extra_request(data: Dict[str, Any]) -> ExtraAttemptRequest:
    student = data.get("student")
    quiz = data.get("quiz")
    return ExtraAttemptRequest(
        id=ref_id(data) or "",
        quiz_id=ref_id(quiz) or "",
        student_id=ref_id(student),
        state=_REQUEST_STATES.get(str(data.get("status", "PENDING")).upper(),
                                  ExtraRequestState.PENDING),
        reason=data.get("reason") or "",
        student_name=student.get("fullName", "") if isinstance(student, dict) else "",
        quiz_title=quiz.get("title", "") if isinstance(quiz, dict) else "",
    )


def parse_module(data: Dict[str, Any], position: int = 0) -> Module:
    return Module(
        id=ref_id(data) or "",
        title=data.get("title") or f"Module {position + 1}",
        order=int(_number(data.get("order"), position)),
        description=html_to_text(data.get("description")),
    )


def parse_module_access(module_id: str, data: Dict[str, Any]) -> ModuleAccess:
    index = data.get("currentAccessibleModuleIndex")
    current = data.get("currentAccessibleModule")
    if isinstance(current, dict):
        current = current.get("title") or ref_id(current)
    return ModuleAccess(
        module_id=module_id,
        has_access=bool(data.get("hasAccess", False)),
        is_timeline_restricted=bool(data.get("isTimelineRestricted", False)),
        reason=data.get("reason"),
        current_accessible_module=current,
        current_accessible_module_index=int(index) if index is not None else None,
    )


def parse_notification(data: Dict[str, Any]) -> TimelineNotification:
    return TimelineNotification(
        id=ref_id(data) or "",
        type=data.get("type") or "INFO",
        title=data.get("title") or "",
        message=html_to_text(data.get("message")),
        is_read=bool(data.get("isRead", False)),
        action_required=bool(data.get("actionRequired", False)),
        created_at=parse_datetime(data.get("createdAt")),
    )


def parse_violation(data: Dict[str, Any], position: int = 0) -> TimelineViolation:
    module = data.get("demotedFromModule")
    title = module.get("title") if isinstance(module, dict) else None
    violated_at = parse_datetime(data.get("violatedAt"))
    fallback_id = f"violation:{ref_id(module)}:{violated_at.isoformat() if violated_at else position}"
    return TimelineViolation(
        id=ref_id(data) or fallback_id,
        demoted_from_module=title or "Previous Module",
        violated_at=violated_at,
    )


def parse_deadline(data: Dict[str, Any]) -> Optional[Deadline]:
    when = parse_datetime(data.get("deadline"))
    if when is None:
        return None
    module = data.get("module")
    module_id = ref_id(module)
    title = data.get("moduleTitle") or (module.get("title") if isinstance(module, dict) else None)
    return Deadline(
        id=ref_id(data) or f"deadline:{module_id}",
        module_id=module_id,
        module_title=title or "Module",
        deadline=when,
    )


def parse_progress(data, course_id: Optional[str] = None) -> Optional[StudentProgress]:
    """
    Parses the student progress payload. The endpoint returns one record per
    course; the record for ``course_id`` is used when given.
    """
    if isinstance(data, list):
        if not data:
            return None
        record = next((p for p in data if course_id and ref_id(p.get("course")) == str(course_id)),
                      data[0])
    else:
        record = data
    if not record:
        return None

    deadlines = [d for d in (parse_deadline(raw) for raw in record.get("upcomingDeadlines") or [])
                 if d]
    return StudentProgress(
        student_id=ref_id(record.get("student")),
        course_id=ref_id(record.get("course")),
        current_level=record.get("currentLevel"),
        level_lock_enabled=bool(record.get("levelLockEnabled", False)),
        locked_level=record.get("lockedLevel"),
        completed_module_ids=[str(m) for m in record.get("completedModuleIds") or []],
        progress_percent=_number(record.get("progressPercent")),
        timeline_violations=[parse_violation(raw, i)
                             for i, raw in enumerate(record.get("timelineViolations") or [])],
        upcoming_deadlines=deadlines,
    )
