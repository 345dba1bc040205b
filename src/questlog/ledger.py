"""Progress ledger: XP and levels, study time, weekly counters and streaks.

Each operation takes a `ProgressState` and returns a new one together with the
events it produced. Inputs are never mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date

from .errors import InvalidInput
from .events import GamificationEvent, LevelUp, StreakExtended, StreakReset, XpGained
from .models import ProgressState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelCurve:
    """XP required to leave a level: `base_xp + step_xp * (level - 1)`."""

    base_xp: int = 100
    step_xp: int = 100

    def __post_init__(self) -> None:
        if self.base_xp <= 0:
            raise ValueError("Level curve base_xp must be positive.")
        if self.step_xp < 0:
            raise ValueError("Level curve step_xp must not be negative.")

    def xp_to_next_level(self, level: int) -> int:
        return self.base_xp + self.step_xp * (max(level, 1) - 1)


def initial_state(curve: LevelCurve, weekly_goal: int) -> ProgressState:
    """Return the progress of a brand new learner."""
    return ProgressState(level=1, xp=0, xp_to_next_level=curve.xp_to_next_level(1), weekly_goal=max(0, weekly_goal))


def apply_xp(
    state: ProgressState, amount: int, curve: LevelCurve
) -> tuple[ProgressState, tuple[GamificationEvent, ...]]:
    """Add XP and level up as many times as the new balance allows."""
    if amount < 0:
        raise InvalidInput(f"XP amount must not be negative (got {amount}).")
    if amount == 0:
        return state, ()

    events: list[GamificationEvent] = [XpGained(amount=amount)]
    level = state.level
    xp = state.xp + amount
    xp_to_next = state.xp_to_next_level
    # One grant may cross several thresholds.
    while xp >= xp_to_next:
        xp -= xp_to_next
        level += 1
        xp_to_next = max(curve.xp_to_next_level(level), xp_to_next)
        events.append(LevelUp(new_level=level))
        logger.debug("Level up to %s", level)

    updated = replace(
        state,
        level=level,
        xp=xp,
        xp_to_next_level=xp_to_next,
        total_xp=state.total_xp + amount,
        weekly_xp=state.weekly_xp + amount,
    )
    return updated, tuple(events)


def record_study_time(state: ProgressState, minutes: int) -> ProgressState:
    """Add study minutes for the current week."""
    if minutes < 0:
        raise InvalidInput(f"Study minutes must not be negative (got {minutes}).")
    return replace(state, study_minutes=state.study_minutes + minutes)


def record_weekly_lesson_completion(state: ProgressState) -> ProgressState:
    """Count one lesson towards the weekly goal; the raw counter is not clamped."""
    return replace(state, weekly_progress=state.weekly_progress + 1)


def reset_weekly(state: ProgressState) -> ProgressState:
    """Start a new week: clear study time, weekly lesson count and weekly XP."""
    return replace(state, study_minutes=0, weekly_progress=0, weekly_xp=0)


def update_streak(
    state: ProgressState, last_activity: date | None, activity_date: date
) -> tuple[ProgressState, date, tuple[GamificationEvent, ...]]:
    """Advance the daily streak for an activity on `activity_date`.

    Returns the new state, the new last-activity date and any streak events.
    """
    if last_activity is None:
        return replace(state, streak_days=1), activity_date, (StreakExtended(days=1),)

    gap = (activity_date - last_activity).days
    if gap < 0:
        raise InvalidInput(
            f"Activity date {activity_date.isoformat()} precedes last activity {last_activity.isoformat()}."
        )
    if gap == 0:
        return state, last_activity, ()
    if gap == 1:
        days = state.streak_days + 1
        return replace(state, streak_days=days), activity_date, (StreakExtended(days=days),)
    logger.debug("Streak broken after %s day gap", gap)
    return replace(state, streak_days=1), activity_date, (StreakReset(),)
