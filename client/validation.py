"""
Quiz authoring checks that run before anything is sent to the server.
"""

from models.quiz_models import Quiz
from client.errors import ValidationFailure


def validate_quiz(quiz: Quiz) -> None:
    """Raises ValidationFailure with the first problem found in the draft."""
    if not quiz.title.strip():
        raise ValidationFailure("Quiz title is required")

    if not quiz.questions:
        raise ValidationFailure("Quiz must have at least one question")

    for q_idx, question in enumerate(quiz.questions, start=1):
        if not question.text.strip():
            raise ValidationFailure(f"Question {q_idx} text is required")

        if len(question.options) < 2:
            raise ValidationFailure(f"Question {q_idx} must have at least 2 options")

        if not any(opt.is_correct for opt in question.options):
            raise ValidationFailure(f"Question {q_idx} must have one correct answer")

        for o_idx, option in enumerate(question.options, start=1):
            if not option.text.strip():
                raise ValidationFailure(f"Option {o_idx} in Question {q_idx} is required")

    if quiz.passing_score < 0 or quiz.passing_score > 100:
        raise ValidationFailure("Passing score must be between 0 and 100")

    if quiz.time_limit is not None and quiz.time_limit < 1:
        raise ValidationFailure("Time limit must be at least 1 minute")

    if quiz.attempts_allowed < 0:
        raise ValidationFailure("Attempts must be 0 (unlimited) or at least 1")


def quiz_payload(quiz: Quiz, course_id: str) -> dict:
    return {
        "courseId": course_id,
        "moduleId": quiz.module_id,
        "title": quiz.title.strip(),
        "description": quiz.description,
        "passingScore": quiz.passing_score,
        "timeLimit": quiz.time_limit,
        "attemptsAllowed": quiz.attempts_allowed,
        "questions": [
            {
                "questionText": q.text.strip(),
                "marks": q.marks,
                "options": [{"text": o.text.strip(), "isCorrect": o.is_correct} for o in q.options],
            }
            for q in quiz.questions
        ],
    }
