"""Rules engine entry points.

The engine is pure: every call takes a `LearnerRecord`, returns a new one plus
the ordered events it produced, and leaves its input untouched. A call that
raises has changed nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from . import achievements, leaderboard, ledger, lessons, scoring
from .achievements import Trigger
from .activities import Activity, LessonStart, ProgressTick, QuizSubmit, StudyTimeTick
from .catalog import Catalog
from .config import Settings
from .errors import InvalidInput, QuestlogError
from .events import EventBuffer, GamificationEvent, LessonCompleted
from .ledger import LevelCurve
from .models import (
    LeaderboardEntry,
    LeaderboardSnapshot,
    LearnerRecord,
    LessonInstance,
    QuizAttempt,
    Timeframe,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(moment: datetime) -> datetime:
    """Normalize a timestamp to UTC; naive values are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


@dataclass(frozen=True)
class ActivityOutcome:
    """New learner state and the events to deliver, in order."""

    record: LearnerRecord
    events: tuple[GamificationEvent, ...]


class Engine:
    """Applies activities to learner aggregates against one catalog."""

    def __init__(self, catalog: Catalog, settings: Settings | None = None, clock: Clock = utc_now) -> None:
        self.catalog = catalog
        self.curve = settings.level_curve if settings is not None else LevelCurve()
        self.weekly_goal = settings.weekly_goal if settings is not None else 5
        self._clock = clock

    def new_learner(self, learner_id: str) -> LearnerRecord:
        """Create the aggregate for a learner with no history."""
        return LearnerRecord(learner_id=learner_id, progress=ledger.initial_state(self.curve, self.weekly_goal))

    def process_activity(self, record: LearnerRecord, activity: Activity) -> ActivityOutcome:
        """Apply one activity and evaluate achievements."""
        moment = as_utc(getattr(activity, "occurred_at", None) or self._clock())
        buffer = EventBuffer()
        try:
            if isinstance(activity, LessonStart):
                updated, trigger = self._lesson_start(record, activity, moment, buffer)
            elif isinstance(activity, ProgressTick):
                updated, trigger = self._progress_tick(record, activity, moment, buffer)
            elif isinstance(activity, QuizSubmit):
                updated, trigger = self._quiz_submit(record, activity, moment, buffer)
            elif isinstance(activity, StudyTimeTick):
                updated, trigger = self._study_time(record, activity, moment, buffer)
            else:
                raise InvalidInput(f"Unsupported activity: {activity!r}")
        except QuestlogError as exc:
            kind = getattr(activity, "kind", type(activity).__name__)
            logger.warning("Rejected %s for learner %s: %s", kind, record.learner_id, exc)
            raise

        updated = self._evaluate_achievements(updated, trigger, moment, buffer)
        logger.debug("Processed %s for learner %s (%s events)", activity.kind, record.learner_id, len(buffer))
        return ActivityOutcome(record=updated, events=buffer.freeze())

    def unlock_lesson(self, record: LearnerRecord, lesson_id: str) -> ActivityOutcome:
        """Apply the external prerequisite signal: locked -> available."""
        lesson = self.catalog.lesson(lesson_id)
        instance = lessons.unlock(lessons.instance_for(record.lessons, lesson))
        return ActivityOutcome(record=_with_lesson(record, instance), events=())

    def award_xp(self, record: LearnerRecord, amount: int) -> ActivityOutcome:
        """Grant XP from outside the lesson flow."""
        buffer = EventBuffer()
        progress, events = ledger.apply_xp(record.progress, amount, self.curve)
        buffer.extend(events)
        moment = as_utc(self._clock())
        updated = self._evaluate_achievements(replace(record, progress=progress), Trigger(), moment, buffer)
        return ActivityOutcome(record=updated, events=buffer.freeze())

    def reset_weekly(self, record: LearnerRecord) -> ActivityOutcome:
        """Apply the external weekly-boundary signal."""
        return ActivityOutcome(record=replace(record, progress=ledger.reset_weekly(record.progress)), events=())

    def rank_cohort(
        self, snapshots: Iterable[LeaderboardSnapshot], timeframe: Timeframe | str
    ) -> list[LeaderboardEntry]:
        try:
            scope = Timeframe(timeframe)
        except ValueError as exc:
            raise InvalidInput(f"Unknown timeframe: {timeframe!r}") from exc
        return leaderboard.rank(snapshots, scope)

    def lesson_view(self, record: LearnerRecord) -> list[LessonInstance]:
        """Return the learner's instance for every catalog lesson, in catalog order."""
        return [lessons.instance_for(record.lessons, lesson) for lesson in self.catalog.ordered_lessons()]

    def _lesson_start(
        self, record: LearnerRecord, activity: LessonStart, moment: datetime, buffer: EventBuffer
    ) -> tuple[LearnerRecord, Trigger]:
        lesson = self.catalog.lesson(activity.lesson_id)
        instance = lessons.start(lessons.instance_for(record.lessons, lesson))
        record = self._track_streak(record, moment, buffer)
        return _with_lesson(record, instance), Trigger(lesson_id=lesson.id)

    def _progress_tick(
        self, record: LearnerRecord, activity: ProgressTick, moment: datetime, buffer: EventBuffer
    ) -> tuple[LearnerRecord, Trigger]:
        lesson = self.catalog.lesson(activity.lesson_id)
        instance = lessons.tick(lessons.instance_for(record.lessons, lesson), activity.percent)
        record = self._track_streak(record, moment, buffer)
        return _with_lesson(record, instance), Trigger(lesson_id=lesson.id)

    def _quiz_submit(
        self, record: LearnerRecord, activity: QuizSubmit, moment: datetime, buffer: EventBuffer
    ) -> tuple[LearnerRecord, Trigger]:
        lesson = self.catalog.lesson(activity.lesson_id)
        instance = lessons.instance_for(record.lessons, lesson)
        lessons.ensure_quiz_admissible(instance)

        questions = activity.questions if activity.questions is not None else lesson.questions
        attempt = QuizAttempt(
            lesson_id=lesson.id,
            learner_id=record.learner_id,
            answers=tuple(activity.answers),
            questions=tuple(questions),
        )
        scoring.validate_attempt(attempt)
        result = scoring.score(attempt)
        outcome = lessons.complete(instance, result)

        record = self._track_streak(record, moment, buffer)
        record = _with_lesson(record, outcome.instance)
        if outcome.improved:
            buffer.emit(
                LessonCompleted(
                    lesson_id=lesson.id,
                    stars=result.stars,
                    score=result.score,
                    first_completion=outcome.first_completion,
                )
            )
        if outcome.first_completion:
            progress = replace(record.progress, lessons_completed=record.progress.lessons_completed + 1)
            progress = ledger.record_weekly_lesson_completion(progress)
            progress, xp_events = ledger.apply_xp(progress, lesson.xp_reward, self.curve)
            buffer.extend(xp_events)
            record = replace(record, progress=progress)
        return record, Trigger(quiz_result=result, lesson_id=lesson.id)

    def _study_time(
        self, record: LearnerRecord, activity: StudyTimeTick, moment: datetime, buffer: EventBuffer
    ) -> tuple[LearnerRecord, Trigger]:
        progress = ledger.record_study_time(record.progress, activity.minutes)
        record = replace(record, progress=progress)
        if activity.minutes > 0:
            record = self._track_streak(record, moment, buffer)
        return record, Trigger()

    def _track_streak(self, record: LearnerRecord, moment: datetime, buffer: EventBuffer) -> LearnerRecord:
        progress, last_date, events = ledger.update_streak(record.progress, record.last_activity_date, moment.date())
        buffer.extend(events)
        return replace(record, progress=progress, last_activity_date=last_date)

    def _evaluate_achievements(
        self, record: LearnerRecord, trigger: Trigger, moment: datetime, buffer: EventBuffer
    ) -> LearnerRecord:
        record, events = achievements.evaluate(self.catalog.achievements, record, trigger, moment)
        buffer.extend(events)
        return record


def _with_lesson(record: LearnerRecord, instance: LessonInstance) -> LearnerRecord:
    """Return a copy of `record` holding `instance`; the original mapping is not touched."""
    return replace(record, lessons={**record.lessons, instance.lesson_id: instance})
