"""Load the lesson and achievement catalog from JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import NotFound
from .models import (
    Achievement,
    AchievementTier,
    ConditionKind,
    Difficulty,
    Lesson,
    Question,
    UnlockCondition,
)

logger = logging.getLogger(__name__)

CONTENT_PACKAGE = "questlog.content"
CATALOG_RESOURCE = "catalog.json"


@dataclass(frozen=True)
class Catalog:
    """Read-only catalog of lessons and achievements.

    Achievements keep file order; that order is the evaluation order.
    """

    lessons: dict[str, Lesson]
    achievements: tuple[Achievement, ...]

    def lesson(self, lesson_id: str) -> Lesson:
        """Return one lesson or raise `NotFound`."""
        lesson = self.lessons.get(lesson_id)
        if lesson is None:
            raise NotFound("lesson", lesson_id)
        return lesson

    def ordered_lessons(self) -> list[Lesson]:
        """Return lessons sorted by catalog order, then id."""
        return sorted(self.lessons.values(), key=lambda item: (item.order, item.id))


def _enum_value(enum_type: Any, raw: object, label: str) -> Any:
    try:
        return enum_type(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValueError(f"Invalid {label} {raw!r}; expected one of: {allowed}.") from exc


def _question_from_dict(lesson_id: str, number: int, raw: dict[str, Any]) -> Question:
    """Build a quiz question from raw JSON content."""
    options = tuple(str(option) for option in raw.get("options", []))
    if not options:
        raise ValueError(f"Question {number} of lesson '{lesson_id}' has no options.")
    correct = int(raw["correct_answer_index"])
    if not 0 <= correct < len(options):
        raise ValueError(f"Question {number} of lesson '{lesson_id}' has an out-of-range correct_answer_index.")
    return Question(
        prompt=str(raw.get("prompt", "")),
        options=options,
        correct_answer_index=correct,
        explanation=str(raw.get("explanation", "")),
    )


def _lesson_from_dict(raw: dict[str, Any]) -> Lesson:
    """Build a lesson from raw JSON content."""
    lesson_id = str(raw["id"]).strip()
    if not lesson_id:
        raise ValueError("Lesson id must not be empty.")
    xp_reward = int(raw.get("xp_reward", 0))
    if xp_reward < 0:
        raise ValueError(f"Lesson '{lesson_id}' has a negative xp_reward.")
    questions = tuple(
        _question_from_dict(lesson_id, number, item) for number, item in enumerate(raw.get("questions", []), start=1)
    )
    return Lesson(
        id=lesson_id,
        title=str(raw["title"]),
        category=str(raw.get("category", "")),
        difficulty=_enum_value(Difficulty, raw.get("difficulty", "beginner"), "difficulty"),
        duration_minutes=max(0, int(raw.get("duration_minutes", 0))),
        xp_reward=xp_reward,
        order=int(raw.get("order", 0)),
        prerequisites=tuple(str(item) for item in raw.get("prerequisites", [])),
        initially_available=bool(raw.get("initially_available", False)),
        questions=questions,
    )


def _achievement_from_dict(raw: dict[str, Any]) -> Achievement:
    """Build an achievement from raw JSON content."""
    achievement_id = str(raw["id"]).strip()
    if not achievement_id:
        raise ValueError("Achievement id must not be empty.")
    condition_raw = raw.get("condition")
    if not isinstance(condition_raw, dict):
        raise ValueError(f"Achievement '{achievement_id}' has no condition.")
    threshold = int(condition_raw.get("threshold", 0))
    if threshold < 0:
        raise ValueError(f"Achievement '{achievement_id}' has a negative threshold.")
    return Achievement(
        id=achievement_id,
        title=str(raw.get("title", achievement_id)),
        tier=_enum_value(AchievementTier, raw.get("tier", "bronze"), "tier"),
        condition=UnlockCondition(
            kind=_enum_value(ConditionKind, condition_raw.get("kind", ""), "condition kind"),
            threshold=threshold,
        ),
        description=str(raw.get("description", "")),
    )


def catalog_from_dicts(documents: list[dict[str, Any]]) -> Catalog:
    """Merge raw catalog documents, in order, into one validated catalog."""
    lessons: dict[str, Lesson] = {}
    achievements: list[Achievement] = []
    seen_achievements: set[str] = set()
    for document in documents:
        for raw_lesson in document.get("lessons", []):
            lesson = _lesson_from_dict(raw_lesson)
            if lesson.id in lessons:
                raise ValueError(f"Duplicate lesson id: {lesson.id}")
            lessons[lesson.id] = lesson
        for raw_achievement in document.get("achievements", []):
            achievement = _achievement_from_dict(raw_achievement)
            if achievement.id in seen_achievements:
                raise ValueError(f"Duplicate achievement id: {achievement.id}")
            seen_achievements.add(achievement.id)
            achievements.append(achievement)
    _validate_lesson_prerequisites(lessons)
    logger.debug("Catalog loaded: %s lessons, %s achievements", len(lessons), len(achievements))
    return Catalog(lessons=lessons, achievements=tuple(achievements))


def load_catalog() -> Catalog:
    """Load the bundled catalog."""
    entry = resources.files(CONTENT_PACKAGE).joinpath(CATALOG_RESOURCE)
    return catalog_from_dicts([json.loads(entry.read_text(encoding="utf-8-sig"))])


def load_catalog_from_path(path: Path) -> Catalog:
    """Load a catalog file, or every `*.json` file of a directory in name order."""
    files = sorted(path.glob("*.json")) if path.is_dir() else [path]
    documents = [json.loads(file_path.read_text(encoding="utf-8-sig")) for file_path in files]
    return catalog_from_dicts(documents)


def _validate_lesson_prerequisites(lessons: dict[str, Lesson]) -> None:
    """Validate prerequisites exist and the prerequisite graph has no cycles."""
    for lesson in lessons.values():
        for prerequisite in lesson.prerequisites:
            if prerequisite not in lessons:
                raise ValueError(f"Lesson '{lesson.id}' has unknown prerequisite '{prerequisite}'.")

    visiting: set[str] = set()
    visited: set[str] = set()

    def visit(lesson_id: str, path: list[str]) -> None:
        if lesson_id in visited:
            return
        if lesson_id in visiting:
            cycle_start = path.index(lesson_id)
            cycle_path = path[cycle_start:] + [lesson_id]
            raise ValueError(f"Circular lesson prerequisite detected: {' -> '.join(cycle_path)}")

        visiting.add(lesson_id)
        path.append(lesson_id)
        for prerequisite in lessons[lesson_id].prerequisites:
            visit(prerequisite, path)
        path.pop()
        visiting.remove(lesson_id)
        visited.add(lesson_id)

    for lesson_id in lessons:
        visit(lesson_id, [])
