from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from questlog.catalog import Catalog, catalog_from_dicts  # noqa: E402
from questlog.engine import Engine  # noqa: E402


class FakeClock:
    """Deterministic clock that tests move forward by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def _question(correct: int) -> dict[str, Any]:
    return {"prompt": "Q", "options": ["a", "b", "c", "d"], "correct_answer_index": correct}


CATALOG_DOCUMENT: dict[str, Any] = {
    "lessons": [
        {
            "id": "intro",
            "title": "Intro",
            "category": "Basics",
            "difficulty": "beginner",
            "duration_minutes": 10,
            "xp_reward": 150,
            "order": 1,
            "initially_available": True,
            "questions": [_question(0), _question(1), _question(2), _question(3)],
        },
        {
            "id": "next",
            "title": "Next",
            "category": "Basics",
            "difficulty": "intermediate",
            "duration_minutes": 20,
            "xp_reward": 40,
            "order": 2,
            "prerequisites": ["intro"],
            "questions": [_question(1), _question(1)],
        },
        {
            "id": "extra",
            "title": "Extra",
            "category": "Other",
            "difficulty": "advanced",
            "duration_minutes": 30,
            "xp_reward": 0,
            "order": 3,
            "initially_available": True,
        },
    ],
    "achievements": [
        {"id": "first-steps", "title": "First Steps", "tier": "bronze", "condition": {"kind": "first_lesson"}},
        {"id": "perfectionist", "title": "Perfectionist", "tier": "gold", "condition": {"kind": "perfect_score"}},
        {
            "id": "streak-3",
            "title": "Three Days",
            "tier": "silver",
            "condition": {"kind": "streak_days", "threshold": 3},
        },
        {
            "id": "level-2",
            "title": "Level Two",
            "tier": "bronze",
            "condition": {"kind": "level_reached", "threshold": 2},
        },
    ],
}


@pytest.fixture
def catalog() -> Catalog:
    return catalog_from_dicts([CATALOG_DOCUMENT])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def engine(catalog: Catalog, clock: FakeClock) -> Engine:
    return Engine(catalog, clock=clock)
