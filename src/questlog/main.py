"""CLI entrypoint for the learner progress engine."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Sequence

from dotenv import load_dotenv

from .activities import LessonStart, ProgressTick, QuizSubmit, StudyTimeTick
from .catalog import load_catalog, load_catalog_from_path
from .config import Settings, get_settings
from .errors import QuestlogError
from .events import (
    AchievementUnlocked,
    GamificationEvent,
    LessonCompleted,
    LevelUp,
    StreakExtended,
    StreakReset,
    XpGained,
)
from .models import Timeframe
from .service import GamificationService

PrintFn = Callable[[str], None]
UNANSWERED_TOKENS = {"", "-", "_"}

logger = logging.getLogger(__name__)


def _service(settings: Settings) -> GamificationService:
    """Create app service from settings."""
    catalog = load_catalog_from_path(settings.catalog_path) if settings.catalog_path else load_catalog()
    return GamificationService(db_path=settings.db_path, catalog=catalog, settings=settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="questlog", description="Learner progress and gamification engine")
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="Start or resume a lesson")
    start.add_argument("learner")
    start.add_argument("lesson")

    tick = commands.add_parser("tick", help="Record in-lesson progress")
    tick.add_argument("learner")
    tick.add_argument("lesson")
    tick.add_argument("percent", type=int)

    quiz = commands.add_parser("quiz", help="Submit quiz answers, comma separated; '-' marks unanswered")
    quiz.add_argument("learner")
    quiz.add_argument("lesson")
    quiz.add_argument("answers")

    study = commands.add_parser("study", help="Record study minutes")
    study.add_argument("learner")
    study.add_argument("minutes", type=int)

    unlock = commands.add_parser("unlock", help="Unlock a lesson, or every lesson whose prerequisites are met")
    unlock.add_argument("learner")
    unlock.add_argument("lesson", nargs="?")

    status = commands.add_parser("status", help="Show learner progress")
    status.add_argument("learner")

    board = commands.add_parser("leaderboard", help="Rank all learners")
    board.add_argument("--timeframe", choices=[item.value for item in Timeframe], default=Timeframe.ALL_TIME.value)
    board.add_argument("--limit", type=int, default=10)

    events = commands.add_parser("events", help="List undelivered events")
    events.add_argument("--limit", type=int, default=50)
    events.add_argument("--ack", action="store_true", help="Mark listed events as delivered")

    reset = commands.add_parser("reset-weekly", help="Start a new week for one or all learners")
    reset.add_argument("learner", nargs="?")
    return parser


def parse_answers(raw: str) -> tuple[int | None, ...]:
    """Parse `2,1,-,0` into option indexes with `None` for unanswered questions."""
    if not raw.strip():
        return ()
    answers: list[int | None] = []
    for token in raw.split(","):
        token = token.strip()
        if token in UNANSWERED_TOKENS:
            answers.append(None)
            continue
        try:
            answers.append(int(token))
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"Invalid answer index: {token!r}") from exc
    return tuple(answers)


def describe_event(event: GamificationEvent) -> str:
    """Render one event as a short line of text."""
    if isinstance(event, XpGained):
        return f"+{event.amount} XP"
    if isinstance(event, LevelUp):
        return f"Level up! You reached level {event.new_level}."
    if isinstance(event, StreakExtended):
        return f"Streak: {event.days} day{'s' if event.days != 1 else ''}"
    if isinstance(event, StreakReset):
        return "Streak reset. A new streak starts today."
    if isinstance(event, LessonCompleted):
        label = "Lesson completed" if event.first_completion else "New best score"
        return f"{label}: {event.lesson_id} ({event.score}%, {event.stars} stars)"
    if isinstance(event, AchievementUnlocked):
        return f"Achievement unlocked: {event.achievement_id} ({event.tier})"
    return event.kind


def run(argv: Sequence[str] | None = None, print_fn: PrintFn = print, settings: Settings | None = None) -> int:
    """Run the CLI application."""
    args = _build_parser().parse_args(argv)
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    service = _service(settings)
    try:
        return _dispatch(service, args, print_fn)
    except QuestlogError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print_fn(f"Error: {exc}")
        return 1
    except argparse.ArgumentTypeError as exc:
        print_fn(f"Error: {exc}")
        return 2
    finally:
        service.close()


def _dispatch(service: GamificationService, args: argparse.Namespace, print_fn: PrintFn) -> int:
    command = args.command
    if command == "start":
        outcome = service.process(args.learner, LessonStart(lesson_id=args.lesson))
        print_fn(f"Started {args.lesson}.")
        _print_events(outcome.events, print_fn)
    elif command == "tick":
        outcome = service.process(args.learner, ProgressTick(lesson_id=args.lesson, percent=args.percent))
        print_fn(f"{args.lesson}: {args.percent}%")
        _print_events(outcome.events, print_fn)
    elif command == "quiz":
        answers = parse_answers(args.answers)
        outcome = service.process(args.learner, QuizSubmit(lesson_id=args.lesson, answers=answers))
        _print_events(outcome.events, print_fn)
        if not outcome.events:
            print_fn("Quiz recorded; no new rewards.")
    elif command == "study":
        outcome = service.process(args.learner, StudyTimeTick(minutes=args.minutes))
        print_fn(f"Recorded {args.minutes} minutes.")
        _print_events(outcome.events, print_fn)
    elif command == "unlock":
        if args.lesson:
            service.unlock_lesson(args.learner, args.lesson)
            print_fn(f"Unlocked {args.lesson}.")
        else:
            unlocked = service.unlock_ready_lessons(args.learner)
            print_fn(f"Unlocked: {', '.join(unlocked)}" if unlocked else "No lessons ready to unlock.")
    elif command == "status":
        _status_flow(service, args.learner, print_fn)
    elif command == "leaderboard":
        _leaderboard_flow(service, Timeframe(args.timeframe), args.limit, print_fn)
    elif command == "events":
        _events_flow(service, args.limit, args.ack, print_fn)
    elif command == "reset-weekly":
        if args.learner:
            service.reset_weekly(args.learner)
            print_fn(f"Weekly counters reset for {args.learner}.")
        else:
            count = service.reset_all_weekly()
            print_fn(f"Weekly counters reset for {count} learners.")
    return 0


def _print_events(events: Sequence[GamificationEvent], print_fn: PrintFn) -> None:
    for event in events:
        print_fn(describe_event(event))


def _status_flow(service: GamificationService, learner_id: str, print_fn: PrintFn) -> None:
    """Print learner progress and lesson table."""
    record = service.get_record(learner_id)
    progress = record.progress
    print_fn(f"=== {learner_id} ===")
    print_fn(f"Level {progress.level}: {progress.xp}/{progress.xp_to_next_level} XP ({progress.total_xp} total)")
    print_fn(describe_event(StreakExtended(days=progress.streak_days)))
    print_fn(f"Weekly goal: {progress.weekly_goal_display()}/{progress.weekly_goal} lessons")
    print_fn(f"Study time this week: {progress.study_minutes} minutes")
    print_fn(f"Achievements: {', '.join(sorted(record.unlocked_ids())) or 'none'}")

    rows = [
        (
            state.lesson_id,
            state.instance.status.value,
            f"{state.instance.progress_percent}%",
            "*" * state.instance.stars_earned or "-",
        )
        for state in service.lesson_states(learner_id)
    ]
    if not rows:
        return
    lesson_width = max(len("Lesson"), max(len(row[0]) for row in rows))
    status_width = max(len("Status"), max(len(row[1]) for row in rows))
    print_fn(f"{'Lesson':<{lesson_width}} {'Status':<{status_width}} {'Progress':>8} Stars")
    for lesson_id, status, percent, stars in rows:
        print_fn(f"{lesson_id:<{lesson_width}} {status:<{status_width}} {percent:>8} {stars}")


def _leaderboard_flow(service: GamificationService, timeframe: Timeframe, limit: int, print_fn: PrintFn) -> None:
    entries = service.leaderboard(timeframe, limit=limit)
    print_fn(f"=== Leaderboard ({timeframe.value}) ===")
    if not entries:
        print_fn("No learners yet.")
        return
    for entry in entries:
        xp = entry.xp_weekly if timeframe == Timeframe.WEEKLY else entry.xp_total
        print_fn(f"#{entry.rank} {entry.learner_id}: {xp} XP, {entry.streak_days} day streak")


def _events_flow(service: GamificationService, limit: int, ack: bool, print_fn: PrintFn) -> None:
    pending = service.pending_events(limit)
    if not pending:
        print_fn("No pending events.")
        return
    for item in pending:
        print_fn(f"[{item.id}] {item.learner_id}: {describe_event(item.event)}")
    if ack:
        count = service.mark_delivered([item.id for item in pending])
        print_fn(f"Marked {count} events delivered.")


def main_entry() -> None:
    """Console script entrypoint."""
    load_dotenv(override=False)
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
