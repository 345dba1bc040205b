"""Core domain models for learner progress and gamification."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType


class LessonStatus(StrEnum):
    """Lifecycle of one lesson for one learner."""

    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Difficulty(StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AchievementTier(StrEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class ConditionKind(StrEnum):
    """Closed set of achievement unlock rules."""

    FIRST_LESSON = "first_lesson"
    LESSONS_COMPLETED = "lessons_completed"
    PERFECT_SCORE = "perfect_score"
    STARS_IN_QUIZ = "stars_in_quiz"
    STREAK_DAYS = "streak_days"
    LEVEL_REACHED = "level_reached"
    TOTAL_XP = "total_xp"
    WEEKLY_GOAL_MET = "weekly_goal_met"
    STUDY_MINUTES = "study_minutes"


class Timeframe(StrEnum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all-time"


@dataclass(frozen=True)
class Question:
    """One multiple-choice quiz question."""

    prompt: str
    options: tuple[str, ...]
    correct_answer_index: int
    explanation: str = ""


@dataclass(frozen=True)
class Lesson:
    """Catalog lesson; read-only to the engine."""

    id: str
    title: str
    category: str
    difficulty: Difficulty
    duration_minutes: int
    xp_reward: int
    order: int = 0
    prerequisites: tuple[str, ...] = ()
    initially_available: bool = False
    questions: tuple[Question, ...] = ()


@dataclass(frozen=True)
class UnlockCondition:
    """Rule deciding when an achievement unlocks."""

    kind: ConditionKind
    threshold: int = 0


@dataclass(frozen=True)
class Achievement:
    """Catalog milestone unlocked at most once per learner."""

    id: str
    title: str
    tier: AchievementTier
    condition: UnlockCondition
    description: str = ""


@dataclass(frozen=True)
class ProgressState:
    """XP, level, streak and weekly counters owned by the progress ledger."""

    level: int = 1
    xp: int = 0
    xp_to_next_level: int = 100
    streak_days: int = 0
    weekly_goal: int = 5
    weekly_progress: int = 0
    study_minutes: int = 0
    total_xp: int = 0
    weekly_xp: int = 0
    lessons_completed: int = 0

    def weekly_goal_display(self) -> int:
        """Return weekly progress clamped to the goal for presentation."""
        return min(self.weekly_progress, self.weekly_goal)


@dataclass(frozen=True)
class LessonInstance:
    """State of one lesson for one learner."""

    lesson_id: str
    status: LessonStatus
    progress_percent: int = 0
    stars_earned: int = 0
    best_score: int | None = None


@dataclass(frozen=True)
class QuizAttempt:
    """One quiz submission; `None` answers are unanswered questions."""

    lesson_id: str
    learner_id: str
    answers: tuple[int | None, ...]
    questions: tuple[Question, ...]


@dataclass(frozen=True)
class QuizResult:
    score: int
    stars: int
    correct_count: int
    total_questions: int


@dataclass(frozen=True)
class AchievementUnlock:
    achievement_id: str
    unlocked_at: datetime


@dataclass(frozen=True)
class LearnerRecord:
    """Per-learner aggregate passed into and returned from every engine call."""

    learner_id: str
    progress: ProgressState
    lessons: Mapping[str, LessonInstance] = field(default_factory=dict)
    unlocks: tuple[AchievementUnlock, ...] = ()
    last_activity_date: date | None = None

    def __post_init__(self) -> None:
        # Each record owns a private read-only copy of its lesson map.
        object.__setattr__(self, "lessons", MappingProxyType(dict(self.lessons)))

    def unlocked_ids(self) -> set[str]:
        """Return ids of achievements this learner already holds."""
        return {unlock.achievement_id for unlock in self.unlocks}

    def completed_lesson_ids(self) -> set[str]:
        """Return ids of lessons in completed status."""
        return {
            lesson_id for lesson_id, instance in self.lessons.items() if instance.status == LessonStatus.COMPLETED
        }


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """Immutable ranking input for one learner."""

    learner_id: str
    xp_total: int
    xp_weekly: int
    streak_days: int


@dataclass(frozen=True)
class LeaderboardEntry:
    learner_id: str
    rank: int
    xp_total: int
    xp_weekly: int
    streak_days: int
