"""Gamification events handed to delivery collaborators.

Every engine call returns its events as an ordered tuple. The order is part of
the contract: delivery must replay events in the order they were appended.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelUp:
    kind: ClassVar[str] = "level_up"

    new_level: int


@dataclass(frozen=True)
class XpGained:
    kind: ClassVar[str] = "xp_gained"

    amount: int


@dataclass(frozen=True)
class StreakExtended:
    kind: ClassVar[str] = "streak_extended"

    days: int


@dataclass(frozen=True)
class StreakReset:
    kind: ClassVar[str] = "streak_reset"


@dataclass(frozen=True)
class LessonCompleted:
    """First completion of a lesson, or a retake that raised its best score."""

    kind: ClassVar[str] = "lesson_completed"

    lesson_id: str
    stars: int
    score: int
    first_completion: bool = True


@dataclass(frozen=True)
class AchievementUnlocked:
    kind: ClassVar[str] = "achievement_unlocked"

    achievement_id: str
    tier: str


GamificationEvent = LevelUp | XpGained | StreakExtended | StreakReset | LessonCompleted | AchievementUnlocked

EVENT_TYPES: dict[str, type[GamificationEvent]] = {
    cls.kind: cls for cls in (LevelUp, XpGained, StreakExtended, StreakReset, LessonCompleted, AchievementUnlocked)
}


class EventBuffer:
    """Append-only, ordered collection of events produced by one engine call."""

    def __init__(self) -> None:
        self._events: list[GamificationEvent] = []

    def emit(self, event: GamificationEvent) -> None:
        self._events.append(event)
        logger.debug("Event buffered: %s %s", event.kind, event)

    def extend(self, events: tuple[GamificationEvent, ...] | list[GamificationEvent]) -> None:
        for event in events:
            self.emit(event)

    def freeze(self) -> tuple[GamificationEvent, ...]:
        """Return buffered events in emission order."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)


def event_to_dict(event: GamificationEvent) -> dict[str, Any]:
    """Serialize one event as a flat JSON-ready mapping."""
    return {"kind": event.kind, **asdict(event)}


def event_from_dict(raw: dict[str, Any]) -> GamificationEvent:
    """Rebuild an event from `event_to_dict` output."""
    payload = dict(raw)
    kind = str(payload.pop("kind", ""))
    event_type = EVENT_TYPES.get(kind)
    if event_type is None:
        raise ValueError(f"Unknown event kind: {kind!r}")
    return event_type(**payload)
