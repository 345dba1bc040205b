"""Settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .ledger import LevelCurve

DEFAULT_DB_PATH = Path(".questlog") / "progress.db"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class Settings:
    """Typed settings for the engine and its command line."""

    db_path: Path
    catalog_path: Path | None
    log_level: str
    level_base_xp: int
    level_step_xp: int
    weekly_goal: int

    @property
    def level_curve(self) -> LevelCurve:
        return LevelCurve(base_xp=self.level_base_xp, step_xp=self.level_step_xp)


def _parse_int(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer (got {raw!r}).") from exc
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum} (got {value}).")
    return value


def _optional_path(raw: str | None) -> Path | None:
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


def load_settings() -> Settings:
    """Read settings from the current environment without caching."""
    log_level = (os.getenv("QUESTLOG_LOG_LEVEL") or "WARNING").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"QUESTLOG_LOG_LEVEL must be one of {', '.join(sorted(LOG_LEVELS))}.")

    return Settings(
        db_path=_optional_path(os.getenv("QUESTLOG_DB_PATH")) or DEFAULT_DB_PATH,
        catalog_path=_optional_path(os.getenv("QUESTLOG_CATALOG_PATH")),
        log_level=log_level,
        level_base_xp=_parse_int("QUESTLOG_LEVEL_BASE_XP", 100, minimum=1),
        level_step_xp=_parse_int("QUESTLOG_LEVEL_STEP_XP", 100, minimum=0),
        weekly_goal=_parse_int("QUESTLOG_WEEKLY_GOAL", 5, minimum=0),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return process-wide settings, read once."""
    return load_settings()
