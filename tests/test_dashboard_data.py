from conftest import make_attempts
from dashboard.data_management import attempts_frame
from models.quiz_models import Quiz


def test_attempts_frame_rows_per_attempt():
    quizzes = [Quiz(id="q1", title="Safety Basics", passing_score=70)]
    grouped = {"q1": make_attempts("q1", 40, 75), "gone": make_attempts("gone", 99)}

    df = attempts_frame(quizzes, grouped)

    assert list(df["Attempt"]) == [1, 2]
    assert list(df["Passed"]) == [False, True]
    assert set(df["Quiz"]) == {"Safety Basics"}


def test_attempts_frame_empty_keeps_columns():
    df = attempts_frame([], {})

    assert df.empty
    assert list(df.columns) == ["Quiz", "Attempt", "Score", "Passing", "Passed", "Submitted"]
