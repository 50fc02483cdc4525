"""
Data Models for Quizzes and Attempts
====================================

This module defines the data structures used to represent quizzes, attempts and
the server's attempt bookkeeping throughout the client. All models are
implemented as dataclasses; closed sets of states are enums.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

DEFAULT_PASSING_SCORE = 70
UNLIMITED = math.inf


@dataclass
class QuizOption:
    text: str
    is_correct: bool = False


@dataclass
class Question:
    text: str
    options: List[QuizOption] = field(default_factory=list)
    marks: int = 1


@dataclass
class Quiz:
    id: str
    title: str = "Module Quiz"
    description: str = ""
    module_id: Optional[str] = None
    passing_score: float = DEFAULT_PASSING_SCORE
    time_limit: Optional[int] = None
    # 0 means unlimited
    attempts_allowed: int = 1
    questions: List[Question] = field(default_factory=list)

    @property
    def is_unlimited(self) -> bool:
        return self.attempts_allowed == 0


@dataclass(frozen=True)
class QuizAttempt:
    id: str
    quiz_id: str
    score: float
    submitted_at: Optional[datetime] = None


@dataclass
class QuizServerStatus:
    """
    Attempt bookkeeping as last reported by the server.

    ``attempts_allowed == 0`` marks an unlimited quiz, in which case
    ``attempts_remaining`` is always ``math.inf``.
    """
    quiz_id: str
    attempts_allowed: int
    attempts_used: int
    attempts_remaining: float
    can_attempt: bool
    best_score: Optional[float] = None
    has_passed: bool = False

    @property
    def is_unlimited(self) -> bool:
        return self.attempts_allowed == 0


class ExtraRequestState(Enum):
    PENDING = "pending"
    GRANTED = "granted"
    REJECTED = "rejected"


@dataclass
class ExtraAttemptRequest:
    id: str
    quiz_id: str
    student_id: Optional[str] = None
    state: ExtraRequestState = ExtraRequestState.PENDING
    reason: str = ""
    student_name: str = ""
    quiz_title: str = ""


class QuizStatus(Enum):
    LOCKED = "locked"
    NOT_ATTEMPTED = "not_attempted"
    PASSED_NO_ATTEMPTS = "passed_no_attempts"
    FAILED_CAN_RETAKE = "failed_can_retake"
    NO_ATTEMPTS_LEFT = "no_attempts_left"
    REJECTED = "rejected"


@dataclass
class QuizStatusView:
    status: QuizStatus
    message: str
    button_text: Optional[str]
    can_start: bool
    attempts_used: int
    attempts_allowed: int
    attempts_left: float
    best_score: Optional[float] = None
    can_request_extra: bool = False

    @property
    def button_disabled(self) -> bool:
        return not self.can_start and self.status is not QuizStatus.PASSED_NO_ATTEMPTS

    @property
    def attempts_left_label(self) -> str:
        if math.isinf(self.attempts_left):
            return "Unlimited"
        return str(int(self.attempts_left))


@dataclass
class StartInfo:
    can_attempt: bool
    quiz: Quiz
    reason: Optional[str] = None


@dataclass
class AnswerReview:
    question: str
    selected: Optional[str]
    correct: Optional[str]
    is_correct: bool


@dataclass
class AttemptResult:
    score: float
    score_percent: float
    total_marks: float
    passed: bool
    attempts_used: int
    attempts_allowed: int
    attempts_remaining: float
    can_retry: bool
    next_module_unlocked: bool = False
    level_upgraded: bool = False
    new_level: Optional[str] = None
    detailed_answers: List[AnswerReview] = field(default_factory=list)
