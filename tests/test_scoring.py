from questlog.errors import InvalidInput
from questlog.models import Question, QuizAttempt
from questlog.scoring import score, stars_for_score, validate_attempt


def _questions(*correct: int) -> tuple[Question, ...]:
    return tuple(Question(prompt="Q", options=("a", "b", "c", "d"), correct_answer_index=index) for index in correct)


def _attempt(answers: tuple[int | None, ...], questions: tuple[Question, ...]) -> QuizAttempt:
    return QuizAttempt(lesson_id="intro", learner_id="alice", answers=answers, questions=questions)


def test_star_boundaries_are_inclusive() -> None:
    assert stars_for_score(100) == 3
    assert stars_for_score(90) == 3
    assert stars_for_score(89) == 2
    assert stars_for_score(70) == 2
    assert stars_for_score(69) == 1
    assert stars_for_score(50) == 1
    assert stars_for_score(49) == 0
    assert stars_for_score(0) == 0


def test_score_counts_correct_answers() -> None:
    result = score(_attempt((0, 1, 2, 0), _questions(0, 1, 2, 3)))
    assert result.correct_count == 3
    assert result.total_questions == 4
    assert result.score == 75
    assert result.stars == 2


def test_score_is_deterministic() -> None:
    attempt = _attempt((0, 1, 2, 3), _questions(0, 1, 2, 3))
    assert score(attempt) == score(attempt)
    assert score(attempt).score == 100


def test_unanswered_questions_count_as_incorrect() -> None:
    result = score(_attempt((None, 1, None, 3), _questions(0, 1, 2, 3)))
    assert result.correct_count == 2
    assert result.score == 50
    assert result.stars == 1


def test_score_rounds_half_up() -> None:
    assert score(_attempt((0, 1, 1, 1, 1, 1, 1, 1), _questions(0, 0, 0, 0, 0, 0, 0, 0))).score == 13
    assert score(_attempt((0, 0, 1), _questions(0, 0, 0))).score == 67
    assert score(_attempt((0, 1, 1), _questions(0, 0, 0))).score == 33


def test_empty_quiz_scores_zero() -> None:
    result = score(_attempt((), ()))
    assert result.score == 0
    assert result.stars == 0
    assert result.total_questions == 0


def test_score_tolerates_short_answer_lists() -> None:
    result = score(_attempt((0,), _questions(0, 1)))
    assert result.correct_count == 1
    assert result.score == 50


def test_validate_rejects_answer_count_mismatch() -> None:
    try:
        validate_attempt(_attempt((0,), _questions(0, 1)))
        raise AssertionError("Expected InvalidInput for missing answers.")
    except InvalidInput as exc:
        assert "1 answers for 2 questions" in str(exc)


def test_validate_rejects_out_of_range_answer_key() -> None:
    broken = (Question(prompt="Q", options=("a",), correct_answer_index=3),)
    try:
        validate_attempt(_attempt((0,), broken))
        raise AssertionError("Expected InvalidInput for out-of-range answer key.")
    except InvalidInput as exc:
        assert "out-of-range" in str(exc)


def test_validate_rejects_question_without_options() -> None:
    broken = (Question(prompt="Q", options=(), correct_answer_index=0),)
    try:
        validate_attempt(_attempt((0,), broken))
        raise AssertionError("Expected InvalidInput for question without options.")
    except InvalidInput as exc:
        assert "no options" in str(exc)


def test_validate_accepts_unanswered_slots() -> None:
    validate_attempt(_attempt((None, None), _questions(0, 1)))
