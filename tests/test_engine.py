from datetime import UTC, date, datetime, timedelta, timezone

from conftest import FakeClock

from questlog.activities import LessonStart, ProgressTick, QuizSubmit, StudyTimeTick
from questlog.engine import Engine
from questlog.errors import InvalidInput, InvalidTransition, NotFound
from questlog.events import (
    AchievementUnlocked,
    LessonCompleted,
    LevelUp,
    StreakExtended,
    StreakReset,
    XpGained,
)
from questlog.models import LeaderboardSnapshot, LearnerRecord, LessonStatus, Timeframe

PERFECT_INTRO = (0, 1, 2, 3)


def test_new_learner_starts_at_level_one(engine: Engine) -> None:
    record = engine.new_learner("alice")
    assert record.progress.level == 1
    assert record.progress.xp == 0
    assert record.progress.xp_to_next_level == 100
    assert record.lessons == {}
    assert record.unlocks == ()
    assert record.last_activity_date is None


def test_full_lesson_flow_levels_up_and_unlocks(engine: Engine) -> None:
    record = engine.new_learner("alice")

    started = engine.process_activity(record, LessonStart(lesson_id="intro"))
    assert started.events == (StreakExtended(days=1),)
    assert started.record.lessons["intro"].status == LessonStatus.IN_PROGRESS

    ticked = engine.process_activity(started.record, ProgressTick(lesson_id="intro", percent=50))
    assert ticked.events == ()
    assert ticked.record.lessons["intro"].progress_percent == 50

    quiz = engine.process_activity(ticked.record, QuizSubmit(lesson_id="intro", answers=PERFECT_INTRO))
    assert quiz.events == (
        LessonCompleted(lesson_id="intro", stars=3, score=100, first_completion=True),
        XpGained(amount=150),
        LevelUp(new_level=2),
        AchievementUnlocked(achievement_id="first-steps", tier="bronze"),
        AchievementUnlocked(achievement_id="perfectionist", tier="gold"),
        AchievementUnlocked(achievement_id="level-2", tier="bronze"),
    )
    progress = quiz.record.progress
    assert (progress.level, progress.xp, progress.xp_to_next_level) == (2, 50, 200)
    assert progress.total_xp == 150
    assert progress.lessons_completed == 1
    assert progress.weekly_progress == 1
    lesson = quiz.record.lessons["intro"]
    assert lesson.status == LessonStatus.COMPLETED
    assert lesson.progress_percent == 100
    assert lesson.stars_earned == 3
    assert lesson.best_score == 100


def test_engine_never_mutates_its_input(engine: Engine) -> None:
    record = engine.new_learner("alice")
    outcome = engine.process_activity(record, LessonStart(lesson_id="intro"))
    assert record.lessons == {}
    assert record.last_activity_date is None
    assert record.progress.streak_days == 0
    assert outcome.record is not record


def test_repeated_quiz_credits_xp_once(engine: Engine) -> None:
    record = engine.new_learner("alice")
    first = engine.process_activity(record, QuizSubmit(lesson_id="intro", answers=PERFECT_INTRO))
    second = engine.process_activity(first.record, QuizSubmit(lesson_id="intro", answers=PERFECT_INTRO))
    assert second.events == ()
    assert second.record.progress == first.record.progress
    assert second.record.unlocks == first.record.unlocks


def test_better_retake_updates_stars_without_xp(engine: Engine) -> None:
    record = engine.new_learner("alice")
    weak = engine.process_activity(record, QuizSubmit(lesson_id="intro", answers=(0, 0, 0, 0)))
    assert weak.record.lessons["intro"].stars_earned == 0
    assert weak.record.lessons["intro"].status == LessonStatus.COMPLETED
    assert XpGained(amount=150) in weak.events

    retake = engine.process_activity(weak.record, QuizSubmit(lesson_id="intro", answers=PERFECT_INTRO))
    assert retake.events == (
        LessonCompleted(lesson_id="intro", stars=3, score=100, first_completion=False),
        AchievementUnlocked(achievement_id="perfectionist", tier="gold"),
    )
    assert retake.record.progress.total_xp == 150
    assert retake.record.progress.lessons_completed == 1
    assert retake.record.lessons["intro"].best_score == 100


def test_zero_reward_lesson_without_questions(engine: Engine) -> None:
    outcome = engine.process_activity(engine.new_learner("alice"), QuizSubmit(lesson_id="extra", answers=()))
    assert outcome.events == (
        StreakExtended(days=1),
        LessonCompleted(lesson_id="extra", stars=0, score=0, first_completion=True),
        AchievementUnlocked(achievement_id="first-steps", tier="bronze"),
    )
    assert outcome.record.progress.total_xp == 0


def test_locked_lesson_rejects_quiz_and_changes_nothing(engine: Engine) -> None:
    record = engine.new_learner("alice")
    try:
        engine.process_activity(record, QuizSubmit(lesson_id="next", answers=(1, 1)))
        raise AssertionError("Expected InvalidTransition for locked lesson.")
    except InvalidTransition as exc:
        assert exc.lesson_id == "next"
    assert record == engine.new_learner("alice")


def test_unlock_then_start_prerequisite_lesson(engine: Engine) -> None:
    record = engine.new_learner("alice")
    unlocked = engine.unlock_lesson(record, "next")
    assert unlocked.events == ()
    assert unlocked.record.lessons["next"].status == LessonStatus.AVAILABLE
    started = engine.process_activity(unlocked.record, LessonStart(lesson_id="next"))
    assert started.record.lessons["next"].status == LessonStatus.IN_PROGRESS


def test_unknown_lesson_raises_not_found(engine: Engine) -> None:
    try:
        engine.process_activity(engine.new_learner("alice"), LessonStart(lesson_id="missing"))
        raise AssertionError("Expected NotFound for unknown lesson.")
    except NotFound as exc:
        assert exc.kind == "lesson"
        assert exc.item_id == "missing"


def test_malformed_quiz_is_rejected(engine: Engine) -> None:
    try:
        engine.process_activity(engine.new_learner("alice"), QuizSubmit(lesson_id="intro", answers=(0, 1)))
        raise AssertionError("Expected InvalidInput for short answer list.")
    except InvalidInput as exc:
        assert "2 answers for 4 questions" in str(exc)


def test_unsupported_activity_is_rejected(engine: Engine) -> None:
    try:
        engine.process_activity(engine.new_learner("alice"), object())  # type: ignore[arg-type]
        raise AssertionError("Expected InvalidInput for unsupported activity.")
    except InvalidInput as exc:
        assert "Unsupported activity" in str(exc)


def test_streak_across_days(engine: Engine, clock: FakeClock) -> None:
    record = engine.process_activity(engine.new_learner("alice"), LessonStart(lesson_id="intro")).record

    clock.advance(days=1)
    day_two = engine.process_activity(record, StudyTimeTick(minutes=10))
    assert day_two.events == (StreakExtended(days=2),)

    clock.advance(days=1)
    day_three = engine.process_activity(day_two.record, StudyTimeTick(minutes=10))
    assert day_three.events == (
        StreakExtended(days=3),
        AchievementUnlocked(achievement_id="streak-3", tier="silver"),
    )
    assert day_three.record.progress.study_minutes == 20

    clock.advance(days=3)
    after_gap = engine.process_activity(day_three.record, ProgressTick(lesson_id="intro", percent=10))
    assert after_gap.events == (StreakReset(),)
    assert after_gap.record.progress.streak_days == 1


def test_zero_minute_study_tick_does_not_count_as_activity(engine: Engine) -> None:
    outcome = engine.process_activity(engine.new_learner("alice"), StudyTimeTick(minutes=0))
    assert outcome.events == ()
    assert outcome.record.last_activity_date is None


def test_backdated_activity_is_rejected(engine: Engine) -> None:
    record = engine.process_activity(engine.new_learner("alice"), StudyTimeTick(minutes=5)).record
    earlier = datetime(2023, 12, 30, 9, 0, tzinfo=UTC)
    try:
        engine.process_activity(record, StudyTimeTick(minutes=5, occurred_at=earlier))
        raise AssertionError("Expected InvalidInput for backdated activity.")
    except InvalidInput:
        pass
    assert record.progress.study_minutes == 5


def test_occurred_at_overrides_clock(engine: Engine) -> None:
    moment = datetime(2024, 3, 5, 18, 30, tzinfo=UTC)
    outcome = engine.process_activity(engine.new_learner("alice"), StudyTimeTick(minutes=5, occurred_at=moment))
    assert outcome.record.last_activity_date == moment.date()


def test_award_xp_levels_up_and_unlocks(engine: Engine) -> None:
    outcome = engine.award_xp(engine.new_learner("alice"), 100)
    assert outcome.events == (
        XpGained(amount=100),
        LevelUp(new_level=2),
        AchievementUnlocked(achievement_id="level-2", tier="bronze"),
    )
    try:
        engine.award_xp(outcome.record, -5)
        raise AssertionError("Expected InvalidInput for negative XP.")
    except InvalidInput:
        pass


def test_reset_weekly_keeps_totals(engine: Engine) -> None:
    record = engine.process_activity(
        engine.new_learner("alice"), QuizSubmit(lesson_id="intro", answers=PERFECT_INTRO)
    ).record
    reset = engine.reset_weekly(record)
    assert reset.events == ()
    assert reset.record.progress.weekly_xp == 0
    assert reset.record.progress.weekly_progress == 0
    assert reset.record.progress.total_xp == 150
    assert reset.record.progress.level == 2


def test_lesson_view_follows_catalog_order(engine: Engine) -> None:
    view = engine.lesson_view(engine.new_learner("alice"))
    assert [(item.lesson_id, item.status) for item in view] == [
        ("intro", LessonStatus.AVAILABLE),
        ("next", LessonStatus.LOCKED),
        ("extra", LessonStatus.AVAILABLE),
    ]


def test_rank_cohort_accepts_timeframe_names(engine: Engine) -> None:
    snapshots = [
        LeaderboardSnapshot(learner_id="a", xp_total=10, xp_weekly=90, streak_days=0),
        LeaderboardSnapshot(learner_id="b", xp_total=80, xp_weekly=20, streak_days=0),
    ]
    assert engine.rank_cohort(snapshots, "weekly")[0].learner_id == "a"
    assert engine.rank_cohort(snapshots, Timeframe.ALL_TIME)[0].learner_id == "b"


def test_records_are_independent(engine: Engine) -> None:
    alice = engine.process_activity(engine.new_learner("alice"), LessonStart(lesson_id="intro")).record
    bob = engine.new_learner("bob")
    assert isinstance(alice, LearnerRecord)
    assert bob.lessons == {}
    assert bob.progress.streak_days == 0


def test_mixed_utc_offsets_compare_in_real_time(engine: Engine, clock: FakeClock) -> None:
    # 01:00 at +05:00 is 20:00 UTC on the previous day.
    early = datetime(2024, 1, 2, 1, 0, tzinfo=timezone(timedelta(hours=5)))
    first = engine.process_activity(engine.new_learner("alice"), StudyTimeTick(minutes=5, occurred_at=early))
    assert first.record.last_activity_date == date(2024, 1, 1)

    clock.now = datetime(2024, 1, 1, 21, 0, tzinfo=UTC)
    second = engine.process_activity(first.record, StudyTimeTick(minutes=5))
    assert second.events == ()
    assert second.record.last_activity_date == date(2024, 1, 1)
    assert second.record.progress.streak_days == 1


def test_naive_timestamps_are_read_as_utc(engine: Engine) -> None:
    naive = datetime(2024, 1, 1, 23, 30)
    outcome = engine.process_activity(engine.new_learner("alice"), StudyTimeTick(minutes=5, occurred_at=naive))
    assert outcome.record.last_activity_date == date(2024, 1, 1)

    later = datetime(2024, 1, 2, 0, 30, tzinfo=timezone(timedelta(hours=1)))
    same_day = engine.process_activity(outcome.record, StudyTimeTick(minutes=5, occurred_at=later))
    assert same_day.events == ()


def test_output_record_does_not_share_lessons_with_input(engine: Engine) -> None:
    before = engine.process_activity(engine.new_learner("alice"), LessonStart(lesson_id="intro")).record
    after = engine.process_activity(before, StudyTimeTick(minutes=5)).record
    assert after.lessons is not before.lessons
    try:
        after.lessons["intro"] = None  # type: ignore[index]
        raise AssertionError("Expected lesson map to be read-only.")
    except TypeError:
        pass
    assert "intro" in before.lessons
    assert "intro" in after.lessons

    awarded = engine.award_xp(after, 10).record
    reset = engine.reset_weekly(awarded).record
    assert reset.lessons is not awarded.lessons
    assert reset.lessons == after.lessons


def test_record_copies_lessons_passed_in(engine: Engine) -> None:
    source = dict(engine.process_activity(engine.new_learner("alice"), LessonStart(lesson_id="intro")).record.lessons)
    record = LearnerRecord(learner_id="bob", progress=engine.new_learner("bob").progress, lessons=source)
    source.clear()
    assert "intro" in record.lessons


def test_unknown_timeframe_is_invalid_input(engine: Engine) -> None:
    try:
        engine.rank_cohort([], "fortnightly")
        raise AssertionError("Expected InvalidInput for unknown timeframe.")
    except InvalidInput as exc:
        assert "fortnightly" in str(exc)
