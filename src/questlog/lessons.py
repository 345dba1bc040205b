"""Lesson state machine: locked -> available -> in-progress -> completed."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace

from .errors import InvalidInput, InvalidTransition
from .models import Lesson, LessonInstance, LessonStatus, QuizResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    """Result of applying a quiz result to a lesson instance."""

    instance: LessonInstance
    first_completion: bool
    improved: bool


def new_instance(lesson: Lesson) -> LessonInstance:
    """Create the lazily-initialized instance for a lesson the learner never touched."""
    status = LessonStatus.AVAILABLE if lesson.initially_available else LessonStatus.LOCKED
    return LessonInstance(lesson_id=lesson.id, status=status)


def instance_for(lessons: Mapping[str, LessonInstance], lesson: Lesson) -> LessonInstance:
    """Return the learner's instance for `lesson`, creating a default one if absent."""
    existing = lessons.get(lesson.id)
    if existing is not None:
        return existing
    return new_instance(lesson)


def unlock(instance: LessonInstance) -> LessonInstance:
    """Make a locked lesson available; any other status is left unchanged."""
    if instance.status != LessonStatus.LOCKED:
        return instance
    return replace(instance, status=LessonStatus.AVAILABLE)


def start(instance: LessonInstance) -> LessonInstance:
    """Begin (or resume) a lesson."""
    if instance.status == LessonStatus.IN_PROGRESS:
        return instance
    if instance.status != LessonStatus.AVAILABLE:
        raise InvalidTransition(instance.lesson_id, instance.status, LessonStatus.IN_PROGRESS)
    return replace(instance, status=LessonStatus.IN_PROGRESS)


def tick(instance: LessonInstance, percent: int) -> LessonInstance:
    """Record in-lesson progress; progress never moves backwards."""
    if not 0 <= percent <= 100:
        raise InvalidInput(f"Progress for lesson '{instance.lesson_id}' must be within 0-100 (got {percent}).")
    if instance.status != LessonStatus.IN_PROGRESS:
        raise InvalidTransition(instance.lesson_id, instance.status, LessonStatus.IN_PROGRESS)
    if percent < instance.progress_percent:
        raise InvalidTransition(
            instance.lesson_id,
            instance.status,
            LessonStatus.IN_PROGRESS,
            reason=f"progress cannot drop from {instance.progress_percent}% to {percent}%",
        )
    return replace(instance, progress_percent=percent)


def ensure_quiz_admissible(instance: LessonInstance) -> None:
    """Raise unless a quiz may be submitted for this lesson."""
    if instance.status == LessonStatus.LOCKED:
        raise InvalidTransition(instance.lesson_id, instance.status, LessonStatus.COMPLETED)


def complete(instance: LessonInstance, result: QuizResult) -> CompletionOutcome:
    """Apply a quiz result.

    The first submission completes the lesson whatever the score. Later
    submissions only replace stars and best score when the score is strictly
    higher; status and progress stay as they are.
    """
    ensure_quiz_admissible(instance)
    if instance.status != LessonStatus.COMPLETED:
        completed = replace(
            instance,
            status=LessonStatus.COMPLETED,
            progress_percent=100,
            stars_earned=result.stars,
            best_score=result.score,
        )
        return CompletionOutcome(instance=completed, first_completion=True, improved=True)

    previous = instance.best_score if instance.best_score is not None else -1
    if result.score <= previous:
        logger.debug("Retake of '%s' scored %s, best remains %s", instance.lesson_id, result.score, previous)
        return CompletionOutcome(instance=instance, first_completion=False, improved=False)
    improved = replace(instance, stars_earned=result.stars, best_score=result.score)
    return CompletionOutcome(instance=improved, first_completion=False, improved=True)
