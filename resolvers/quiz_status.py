"""
Quiz Status Resolution
======================

Derives the single display state of a quiz card from the student's attempts,
the server's attempt bookkeeping and the in-session extra attempt hints.

The server stays the enforcement authority: ``can_attempt`` from the latest
status snapshot decides whether an attempt is permitted whenever it is known,
and the ``extra_granted`` hint only changes the displayed counter.
"""

import math
from typing import List, Optional

from models.quiz_models import (UNLIMITED, Quiz, QuizAttempt, QuizServerStatus, QuizStatus,
                                QuizStatusView)


def best_attempt(attempts: List[QuizAttempt]) -> Optional[QuizAttempt]:
    """Highest scoring attempt; on ties the earliest one is kept."""
    if not attempts:
        return None
    best = attempts[0]
    for current in attempts[1:]:
        if current.score > best.score:
            best = current
    return best


def attempts_left(quiz: Quiz, attempts: List[QuizAttempt],
                  server_status: Optional[QuizServerStatus] = None) -> float:
    """
    Remaining attempts as known to the client. Unlimited quizzes return
    ``math.inf`` before any subtraction happens.
    """
    if server_status is not None:
        if server_status.is_unlimited:
            return UNLIMITED
        return max(server_status.attempts_remaining, 0)

    if quiz.is_unlimited:
        return UNLIMITED
    return float(max(quiz.attempts_allowed - len(attempts), 0))


def _fmt_score(score: float) -> str:
    return f"{score:g}"


def resolve_quiz_status(quiz: Quiz, attempts: List[QuizAttempt],
                        server_status: Optional[QuizServerStatus] = None,
                        extra_granted: bool = False, rejected: bool = False,
                        request_pending: bool = False, unlocked: bool = True) -> QuizStatusView:
    attempts = attempts or []
    attempts_used = server_status.attempts_used if server_status else len(attempts)
    attempts_used = max(attempts_used, len(attempts))
    attempts_allowed = server_status.attempts_allowed if server_status else quiz.attempts_allowed

    remaining = attempts_left(quiz, attempts, server_status)
    permitted = server_status.can_attempt if server_status is not None else remaining > 0

    # Display hint only; the floor never feeds into ``permitted``.
    shown_left = max(remaining, 1) if extra_granted else remaining

    def view(status, message, button_text, can_start, best=None, can_request_extra=False):
        return QuizStatusView(
            status=status,
            message=message,
            button_text=button_text,
            can_start=can_start,
            attempts_used=attempts_used,
            attempts_allowed=attempts_allowed,
            attempts_left=shown_left,
            best_score=best,
            can_request_extra=can_request_extra,
        )

    if not unlocked:
        return view(QuizStatus.LOCKED, "Locked", "Complete Lessons First", False)

    if attempts_used == 0 and permitted:
        return view(QuizStatus.NOT_ATTEMPTED, "Not attempted", "Start Quiz", True)

    best = best_attempt(attempts)
    best_score = best.score if best else None

    if best is not None and best.score >= quiz.passing_score:
        return view(QuizStatus.PASSED_NO_ATTEMPTS, f"Completed: {_fmt_score(best.score)}%",
                    "View Results", False, best_score)

    left_label = "unlimited" if math.isinf(shown_left) else str(int(shown_left))
    score_label = f"Score: {_fmt_score(best_score)}%" if best_score is not None else "No score"

    if permitted:
        return view(QuizStatus.FAILED_CAN_RETAKE, f"{score_label} ({left_label} attempts left)",
                    f"Retake Quiz ({left_label} left)", True, best_score)

    if rejected:
        return view(QuizStatus.REJECTED, f"{score_label} (extra attempt request rejected)",
                    None, False, best_score)

    return view(QuizStatus.NO_ATTEMPTS_LEFT, f"{score_label} (No attempts left)",
                "No Attempts Left", False, best_score,
                can_request_extra=attempts_used > 0 and not (request_pending or extra_granted))
