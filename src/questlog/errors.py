"""Typed failures raised by the rules engine."""

from __future__ import annotations


class QuestlogError(Exception):
    """Base class for every engine failure."""


class InvalidTransition(QuestlogError):
    """Illegal lesson status change."""

    def __init__(self, lesson_id: str, current: str, attempted: str, reason: str | None = None) -> None:
        message = f"Lesson '{lesson_id}' cannot go from '{current}' to '{attempted}'"
        super().__init__(f"{message}: {reason}." if reason else f"{message}.")
        self.lesson_id = lesson_id
        self.current = current
        self.attempted = attempted


class InvalidInput(QuestlogError):
    """Input rejected before any state changed (backdated streak, malformed quiz, negative amounts)."""


class NotFound(QuestlogError):
    """Unknown lesson or achievement id."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"Unknown {kind} id: {item_id}")
        self.kind = kind
        self.item_id = item_id
