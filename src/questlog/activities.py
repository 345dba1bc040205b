"""Inbound learner activities processed by the engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import ClassVar

from .models import Question


class ActivityKind(StrEnum):
    LESSON_START = "lesson_start"
    PROGRESS_TICK = "progress_tick"
    QUIZ_SUBMIT = "quiz_submit"
    STUDY_TIME_TICK = "study_time_tick"


@dataclass(frozen=True)
class LessonStart:
    kind: ClassVar[ActivityKind] = ActivityKind.LESSON_START

    lesson_id: str
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class ProgressTick:
    kind: ClassVar[ActivityKind] = ActivityKind.PROGRESS_TICK

    lesson_id: str
    percent: int
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class QuizSubmit:
    """Quiz answers for a lesson.

    `questions` defaults to the lesson's catalog quiz when omitted.
    """

    kind: ClassVar[ActivityKind] = ActivityKind.QUIZ_SUBMIT

    lesson_id: str
    answers: tuple[int | None, ...]
    questions: tuple[Question, ...] | None = None
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class StudyTimeTick:
    kind: ClassVar[ActivityKind] = ActivityKind.STUDY_TIME_TICK

    minutes: int
    occurred_at: datetime | None = None


Activity = LessonStart | ProgressTick | QuizSubmit | StudyTimeTick
