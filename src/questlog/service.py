"""Application service: per-learner serialization around the engine and store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .activities import Activity
from .catalog import Catalog, load_catalog
from .config import Settings
from .engine import ActivityOutcome, Clock, Engine, utc_now
from .leaderboard import snapshot_of
from .models import LeaderboardEntry, LearnerRecord, LessonInstance, LessonStatus, Timeframe
from .store import LearnerStore, OutboxEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonState:
    """Lesson metadata joined with one learner's instance, for display."""

    lesson_id: str
    title: str
    category: str
    xp_reward: int
    prerequisites: tuple[str, ...]
    instance: LessonInstance


class LearnerLocks:
    """Registry of one exclusive lock per learner id.

    A lock lives only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, learner_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(learner_id, threading.Lock())
            self._users[learner_id] = self._users.get(learner_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[learner_id] -= 1
                if not self._users[learner_id]:
                    del self._users[learner_id]
                    del self._locks[learner_id]


class GamificationService:
    """Loads a learner, runs the engine and persists state plus events atomically."""

    def __init__(
        self,
        db_path: Path | str,
        catalog: Catalog | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize service with database path and catalog."""
        self.catalog = catalog if catalog is not None else load_catalog()
        self.engine = Engine(self.catalog, settings=settings, clock=clock)
        self.store = LearnerStore(db_path)
        self._locks = LearnerLocks()

    def get_record(self, learner_id: str) -> LearnerRecord:
        """Return the stored aggregate, or a fresh one for an unseen learner."""
        record = self.store.get_record(learner_id)
        if record is None:
            return self.engine.new_learner(learner_id)
        return record

    def process(self, learner_id: str, activity: Activity) -> ActivityOutcome:
        """Apply one activity; nothing is stored when the engine rejects it."""
        with self._locks.hold(learner_id):
            outcome = self.engine.process_activity(self.get_record(learner_id), activity)
            self.store.save_record(outcome.record, outcome.events)
        logger.info("Learner %s: %s produced %s events", learner_id, activity.kind, len(outcome.events))
        return outcome

    def unlock_lesson(self, learner_id: str, lesson_id: str) -> ActivityOutcome:
        """Make one lesson available regardless of prerequisites."""
        with self._locks.hold(learner_id):
            outcome = self.engine.unlock_lesson(self.get_record(learner_id), lesson_id)
            self.store.save_record(outcome.record, outcome.events)
        return outcome

    def unlock_ready_lessons(self, learner_id: str) -> list[str]:
        """Unlock every locked lesson whose prerequisites are all completed.

        Returns the ids unlocked by this call, in catalog order.
        """
        unlocked: list[str] = []
        with self._locks.hold(learner_id):
            record = self.get_record(learner_id)
            completed = record.completed_lesson_ids()
            for instance in self.engine.lesson_view(record):
                if instance.status != LessonStatus.LOCKED:
                    continue
                lesson = self.catalog.lesson(instance.lesson_id)
                if not lesson.prerequisites or not all(dep in completed for dep in lesson.prerequisites):
                    continue
                record = self.engine.unlock_lesson(record, lesson.id).record
                unlocked.append(lesson.id)
            if unlocked:
                self.store.save_record(record)
        if unlocked:
            logger.info("Learner %s: unlocked %s", learner_id, ", ".join(unlocked))
        return unlocked

    def award_xp(self, learner_id: str, amount: int) -> ActivityOutcome:
        """Grant bonus XP outside the lesson flow."""
        with self._locks.hold(learner_id):
            outcome = self.engine.award_xp(self.get_record(learner_id), amount)
            self.store.save_record(outcome.record, outcome.events)
        return outcome

    def reset_weekly(self, learner_id: str) -> ActivityOutcome:
        """Start a new week for one learner."""
        with self._locks.hold(learner_id):
            outcome = self.engine.reset_weekly(self.get_record(learner_id))
            self.store.save_record(outcome.record)
        return outcome

    def reset_all_weekly(self) -> int:
        """Start a new week for every stored learner and return how many were reset."""
        learner_ids = [record.learner_id for record in self.store.list_records()]
        for learner_id in learner_ids:
            self.reset_weekly(learner_id)
        logger.info("Weekly reset applied to %s learners", len(learner_ids))
        return len(learner_ids)

    def leaderboard(
        self, timeframe: Timeframe | str = Timeframe.ALL_TIME, limit: int | None = None
    ) -> list[LeaderboardEntry]:
        """Rank every stored learner for a timeframe."""
        snapshots = [snapshot_of(record) for record in self.store.list_records()]
        entries = self.engine.rank_cohort(snapshots, timeframe)
        return entries if limit is None else entries[:limit]

    def lesson_states(self, learner_id: str) -> list[LessonState]:
        """Return catalog lessons with this learner's status, in catalog order."""
        record = self.get_record(learner_id)
        states: list[LessonState] = []
        for instance in self.engine.lesson_view(record):
            lesson = self.catalog.lesson(instance.lesson_id)
            states.append(
                LessonState(
                    lesson_id=lesson.id,
                    title=lesson.title,
                    category=lesson.category,
                    xp_reward=lesson.xp_reward,
                    prerequisites=lesson.prerequisites,
                    instance=instance,
                )
            )
        return states

    def pending_events(self, limit: int = 100) -> list[OutboxEvent]:
        return self.store.pending_events(limit)

    def mark_delivered(self, event_ids: list[int]) -> int:
        return self.store.mark_delivered(event_ids)

    def close(self) -> None:
        """Close resources."""
        self.store.close()
