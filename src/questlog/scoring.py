"""Quiz scoring and star tiers."""

from __future__ import annotations

from .errors import InvalidInput
from .models import QuizAttempt, QuizResult

# Inclusive lower bounds, highest tier first.
STAR_THRESHOLDS: tuple[tuple[int, int], ...] = ((90, 3), (70, 2), (50, 1))
PERFECT_SCORE = 100


def stars_for_score(score: int) -> int:
    """Map a 0-100 score to a 0-3 star tier."""
    for threshold, stars in STAR_THRESHOLDS:
        if score >= threshold:
            return stars
    return 0


def correct_count(attempt: QuizAttempt) -> int:
    """Count answers matching the correct option; missing answers count as wrong."""
    count = 0
    for index, question in enumerate(attempt.questions):
        answer = attempt.answers[index] if index < len(attempt.answers) else None
        if answer is not None and answer == question.correct_answer_index:
            count += 1
    return count


def score(attempt: QuizAttempt) -> QuizResult:
    """Score one attempt.

    Total over any input: unanswered or surplus answers never raise. The percentage
    is rounded half-up in integer arithmetic, so 1 of 8 correct scores 13 and not
    the 12 that `round()` would give.
    """
    total = len(attempt.questions)
    correct = correct_count(attempt)
    if total == 0:
        percent = 0
    else:
        percent = (correct * 200 + total) // (2 * total)
    return QuizResult(score=percent, stars=stars_for_score(percent), correct_count=correct, total_questions=total)


def validate_attempt(attempt: QuizAttempt) -> None:
    """Reject structurally malformed attempts before any state changes."""
    if len(attempt.answers) != len(attempt.questions):
        raise InvalidInput(
            f"Quiz for lesson '{attempt.lesson_id}' has {len(attempt.answers)} answers "
            f"for {len(attempt.questions)} questions."
        )
    for number, question in enumerate(attempt.questions, start=1):
        if not question.options:
            raise InvalidInput(f"Question {number} of lesson '{attempt.lesson_id}' has no options.")
        if not 0 <= question.correct_answer_index < len(question.options):
            raise InvalidInput(f"Question {number} of lesson '{attempt.lesson_id}' has an out-of-range answer key.")
