"""Leaderboard ranking over immutable progress snapshots."""

from __future__ import annotations

from collections.abc import Iterable

from .models import LeaderboardEntry, LeaderboardSnapshot, LearnerRecord, Timeframe


def snapshot_of(record: LearnerRecord) -> LeaderboardSnapshot:
    """Build the ranking input for one learner."""
    progress = record.progress
    return LeaderboardSnapshot(
        learner_id=record.learner_id,
        xp_total=progress.total_xp,
        xp_weekly=progress.weekly_xp,
        streak_days=progress.streak_days,
    )


def sort_key_value(snapshot: LeaderboardSnapshot, timeframe: Timeframe) -> int:
    """Return the XP figure a timeframe ranks by.

    Monthly boards rank by `xp_total`; callers pass totals already restricted to
    the month window.
    """
    if timeframe == Timeframe.WEEKLY:
        return snapshot.xp_weekly
    return snapshot.xp_total


def rank(snapshots: Iterable[LeaderboardSnapshot], timeframe: Timeframe) -> list[LeaderboardEntry]:
    """Order a cohort by XP, then streak, then input order.

    Every entry gets its own sequential rank starting at 1; ties do not share a
    rank number.
    """
    ordered = sorted(
        snapshots,
        key=lambda item: (-sort_key_value(item, timeframe), -item.streak_days),
    )
    return [
        LeaderboardEntry(
            learner_id=item.learner_id,
            rank=position,
            xp_total=item.xp_total,
            xp_weekly=item.xp_weekly,
            streak_days=item.streak_days,
        )
        for position, item in enumerate(ordered, start=1)
    ]
