import math

from conftest import make_attempts, make_status
from models.quiz_models import Quiz, QuizStatus
from resolvers.quiz_status import attempts_left, best_attempt, resolve_quiz_status


def _quiz(allowed=2, passing=70):
    return Quiz(id="q1", title="Safety Basics", passing_score=passing, attempts_allowed=allowed)


def test_failed_attempt_with_one_left_can_retake():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 40),
                               make_status("q1", allowed=2, used=1, can_attempt=True))

    assert view.status is QuizStatus.FAILED_CAN_RETAKE
    assert view.attempts_left == 1
    assert view.can_start
    assert view.button_text == "Retake Quiz (1 left)"
    assert view.best_score == 40


def test_passed_with_no_attempts_left_shows_results():
    view = resolve_quiz_status(_quiz(allowed=1), make_attempts("q1", 85),
                               make_status("q1", allowed=1, used=1, can_attempt=False))

    assert view.status is QuizStatus.PASSED_NO_ATTEMPTS
    assert view.button_text == "View Results"
    assert view.message == "Completed: 85%"
    assert not view.can_start
    assert not view.button_disabled


def test_unlimited_quiz_without_attempts_is_not_attempted():
    view = resolve_quiz_status(_quiz(allowed=0), [],
                               make_status("q1", allowed=0, used=0, can_attempt=True))

    assert view.status is QuizStatus.NOT_ATTEMPTED
    assert view.button_text == "Start Quiz"
    assert math.isinf(view.attempts_left)
    assert view.attempts_left_label == "Unlimited"


def test_unlimited_quiz_never_runs_out_locally():
    quiz = _quiz(allowed=0)
    attempts = make_attempts("q1", *([10] * 50))

    assert math.isinf(attempts_left(quiz, attempts))
    view = resolve_quiz_status(quiz, attempts)
    assert view.status is QuizStatus.FAILED_CAN_RETAKE
    assert view.button_text == "Retake Quiz (unlimited left)"


def test_rejected_request_has_no_button():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 40, 50),
                               make_status("q1", allowed=2, used=2, can_attempt=False),
                               rejected=True)

    assert view.status is QuizStatus.REJECTED
    assert view.button_text is None
    assert not view.can_start
    assert view.button_disabled


def test_no_attempts_left_offers_extra_request():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 40, 50),
                               make_status("q1", allowed=2, used=2, can_attempt=False))

    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert view.button_text == "No Attempts Left"
    assert view.can_request_extra
    assert view.attempts_left == 0


def test_pending_request_hides_extra_request_action():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 40, 50),
                               make_status("q1", allowed=2, used=2, can_attempt=False),
                               request_pending=True)

    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert not view.can_request_extra


def test_best_score_is_the_maximum_and_earliest_on_ties():
    attempts = make_attempts("q1", 40, 65, 65, 30)

    best = best_attempt(attempts)

    assert best.score == 65
    assert best.id == "a1"
    assert best_attempt([]) is None


def test_passing_is_sticky_after_a_worse_attempt():
    view = resolve_quiz_status(_quiz(allowed=3), make_attempts("q1", 90, 20),
                               make_status("q1", allowed=3, used=2, can_attempt=True))

    assert view.status is QuizStatus.PASSED_NO_ATTEMPTS
    assert view.best_score == 90


def test_score_equal_to_passing_counts_as_passed():
    view = resolve_quiz_status(_quiz(passing=70), make_attempts("q1", 70))

    assert view.status is QuizStatus.PASSED_NO_ATTEMPTS


def test_extra_granted_floor_is_display_only():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 40, 50),
                               make_status("q1", allowed=2, used=2, can_attempt=False),
                               extra_granted=True)

    assert view.attempts_left == 1
    assert not view.can_start
    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert not view.can_request_extra


def test_server_permission_overrides_local_count():
    # Server granted an extra attempt the local quiz record does not know about
    view = resolve_quiz_status(_quiz(allowed=1), make_attempts("q1", 30),
                               make_status("q1", allowed=2, used=1, can_attempt=True))

    assert view.status is QuizStatus.FAILED_CAN_RETAKE
    assert view.attempts_allowed == 2


def test_server_denial_wins_over_remaining_count():
    view = resolve_quiz_status(_quiz(), make_attempts("q1", 30),
                               make_status("q1", allowed=2, used=1, remaining=1,
                                           can_attempt=False))

    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert not view.can_start


def test_attempts_used_never_below_local_attempts():
    view = resolve_quiz_status(_quiz(allowed=3), make_attempts("q1", 10, 20),
                               make_status("q1", allowed=3, used=0, can_attempt=True))

    assert view.attempts_used == 2
    assert view.status is QuizStatus.FAILED_CAN_RETAKE


def test_locked_quiz_cannot_start():
    view = resolve_quiz_status(_quiz(), [], unlocked=False)

    assert view.status is QuizStatus.LOCKED
    assert view.button_text == "Complete Lessons First"
    assert view.button_disabled


def test_local_fallback_without_server_status():
    view = resolve_quiz_status(_quiz(allowed=2), make_attempts("q1", 40, 45))

    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert view.attempts_left == 0
    assert view.attempts_allowed == 2


def test_untaken_quiz_closed_by_server_offers_no_extra_request():
    view = resolve_quiz_status(_quiz(), [],
                               make_status("q1", allowed=2, used=0, can_attempt=False))

    assert view.status is QuizStatus.NO_ATTEMPTS_LEFT
    assert not view.can_start
    assert not view.can_request_extra
