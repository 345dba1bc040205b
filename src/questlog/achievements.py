"""Achievement evaluation with at-most-once unlocks per learner."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from .errors import NotFound
from .events import AchievementUnlocked, GamificationEvent
from .models import Achievement, AchievementUnlock, ConditionKind, LearnerRecord, ProgressState, QuizResult
from .scoring import PERFECT_SCORE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trigger:
    """What just happened, for conditions that depend on the triggering activity."""

    quiz_result: QuizResult | None = None
    lesson_id: str | None = None


def condition_met(achievement: Achievement, progress: ProgressState, trigger: Trigger) -> bool:
    """Return whether the achievement's rule holds for the current state and trigger."""
    condition = achievement.condition
    threshold = condition.threshold
    kind = condition.kind
    if kind == ConditionKind.FIRST_LESSON:
        return progress.lessons_completed >= 1
    if kind == ConditionKind.LESSONS_COMPLETED:
        return progress.lessons_completed >= threshold
    if kind == ConditionKind.PERFECT_SCORE:
        return trigger.quiz_result is not None and trigger.quiz_result.score >= PERFECT_SCORE
    if kind == ConditionKind.STARS_IN_QUIZ:
        return trigger.quiz_result is not None and trigger.quiz_result.stars >= threshold
    if kind == ConditionKind.STREAK_DAYS:
        return progress.streak_days >= threshold
    if kind == ConditionKind.LEVEL_REACHED:
        return progress.level >= threshold
    if kind == ConditionKind.TOTAL_XP:
        return progress.total_xp >= threshold
    if kind == ConditionKind.WEEKLY_GOAL_MET:
        return progress.weekly_goal > 0 and progress.weekly_progress >= progress.weekly_goal
    if kind == ConditionKind.STUDY_MINUTES:
        return progress.study_minutes >= threshold
    raise ValueError(f"Unsupported condition kind: {kind!r}")


def evaluate(
    achievements: Sequence[Achievement],
    record: LearnerRecord,
    trigger: Trigger,
    unlocked_at: datetime,
) -> tuple[LearnerRecord, tuple[GamificationEvent, ...]]:
    """Unlock every newly satisfied achievement, walking the catalog in order."""
    held = record.unlocked_ids()
    new_unlocks: list[AchievementUnlock] = []
    events: list[GamificationEvent] = []
    for achievement in achievements:
        if achievement.id in held:
            continue
        if not condition_met(achievement, record.progress, trigger):
            continue
        held.add(achievement.id)
        new_unlocks.append(AchievementUnlock(achievement_id=achievement.id, unlocked_at=unlocked_at))
        events.append(AchievementUnlocked(achievement_id=achievement.id, tier=achievement.tier.value))
        logger.info("Learner %s unlocked achievement %s", record.learner_id, achievement.id)

    if not new_unlocks:
        return record, ()
    return replace(record, unlocks=record.unlocks + tuple(new_unlocks)), tuple(events)


def achievement_by_id(achievements: Sequence[Achievement], achievement_id: str) -> Achievement:
    """Look up one catalog achievement."""
    for achievement in achievements:
        if achievement.id == achievement_id:
            return achievement
    raise NotFound("achievement", achievement_id)
