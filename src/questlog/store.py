"""SQLite persistence for learner aggregates and the event outbox."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from .events import GamificationEvent, event_from_dict, event_to_dict
from .models import AchievementUnlock, LearnerRecord, LessonInstance, LessonStatus, ProgressState

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class OutboxEvent:
    """Event persisted for delivery, with its outbox id."""

    id: int
    learner_id: str
    event: GamificationEvent
    created_at: str


class LearnerStore:
    """Database access layer for learner aggregates."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create learner, lesson, unlock and outbox tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS learners (
                    learner_id TEXT PRIMARY KEY,
                    level INTEGER NOT NULL,
                    xp INTEGER NOT NULL,
                    xp_to_next_level INTEGER NOT NULL,
                    streak_days INTEGER NOT NULL,
                    weekly_goal INTEGER NOT NULL,
                    weekly_progress INTEGER NOT NULL,
                    study_minutes INTEGER NOT NULL,
                    total_xp INTEGER NOT NULL,
                    weekly_xp INTEGER NOT NULL,
                    lessons_completed INTEGER NOT NULL,
                    last_activity_date TEXT,
                    updated_at TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS lesson_progress (
                    learner_id TEXT NOT NULL,
                    lesson_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    progress_percent INTEGER NOT NULL,
                    stars_earned INTEGER NOT NULL,
                    best_score INTEGER,
                    PRIMARY KEY (learner_id, lesson_id)
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS achievement_unlocks (
                    learner_id TEXT NOT NULL,
                    achievement_id TEXT NOT NULL,
                    unlocked_at TEXT NOT NULL,
                    PRIMARY KEY (learner_id, achievement_id)
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS event_outbox (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    learner_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    delivered_at TEXT
                )
                """)

    def get_record(self, learner_id: str) -> LearnerRecord | None:
        """Load one learner aggregate."""
        with self._lock:
            row = self._conn.execute("SELECT * FROM learners WHERE learner_id = ?", (learner_id,)).fetchone()
            if row is None:
                return None
            lesson_rows = self._conn.execute(
                """
                SELECT lesson_id, status, progress_percent, stars_earned, best_score
                FROM lesson_progress
                WHERE learner_id = ?
                ORDER BY lesson_id
                """,
                (learner_id,),
            ).fetchall()
            unlock_rows = self._conn.execute(
                """
                SELECT achievement_id, unlocked_at
                FROM achievement_unlocks
                WHERE learner_id = ?
                ORDER BY unlocked_at, rowid
                """,
                (learner_id,),
            ).fetchall()

        progress = ProgressState(
            level=int(row["level"]),
            xp=int(row["xp"]),
            xp_to_next_level=int(row["xp_to_next_level"]),
            streak_days=int(row["streak_days"]),
            weekly_goal=int(row["weekly_goal"]),
            weekly_progress=int(row["weekly_progress"]),
            study_minutes=int(row["study_minutes"]),
            total_xp=int(row["total_xp"]),
            weekly_xp=int(row["weekly_xp"]),
            lessons_completed=int(row["lessons_completed"]),
        )
        lessons = {
            str(item["lesson_id"]): LessonInstance(
                lesson_id=str(item["lesson_id"]),
                status=LessonStatus(str(item["status"])),
                progress_percent=int(item["progress_percent"]),
                stars_earned=int(item["stars_earned"]),
                best_score=int(item["best_score"]) if item["best_score"] is not None else None,
            )
            for item in lesson_rows
        }
        unlocks = tuple(
            AchievementUnlock(
                achievement_id=str(item["achievement_id"]),
                unlocked_at=datetime.fromisoformat(str(item["unlocked_at"])),
            )
            for item in unlock_rows
        )
        last_activity = row["last_activity_date"]
        return LearnerRecord(
            learner_id=str(row["learner_id"]),
            progress=progress,
            lessons=lessons,
            unlocks=unlocks,
            last_activity_date=date.fromisoformat(str(last_activity)) if last_activity else None,
        )

    def list_records(self) -> list[LearnerRecord]:
        """Return every stored learner ordered by id."""
        with self._lock:
            rows = self._conn.execute("SELECT learner_id FROM learners ORDER BY learner_id").fetchall()
        records = [self.get_record(str(row["learner_id"])) for row in rows]
        return [record for record in records if record is not None]

    def save_record(self, record: LearnerRecord, events: Iterable[GamificationEvent] = ()) -> None:
        """Persist an aggregate and append its events to the outbox in one transaction."""
        now = datetime.now(UTC).isoformat()
        progress = record.progress
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO learners (
                    learner_id,
                    level,
                    xp,
                    xp_to_next_level,
                    streak_days,
                    weekly_goal,
                    weekly_progress,
                    study_minutes,
                    total_xp,
                    weekly_xp,
                    lessons_completed,
                    last_activity_date,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(learner_id) DO UPDATE SET
                    level = excluded.level,
                    xp = excluded.xp,
                    xp_to_next_level = excluded.xp_to_next_level,
                    streak_days = excluded.streak_days,
                    weekly_goal = excluded.weekly_goal,
                    weekly_progress = excluded.weekly_progress,
                    study_minutes = excluded.study_minutes,
                    total_xp = excluded.total_xp,
                    weekly_xp = excluded.weekly_xp,
                    lessons_completed = excluded.lessons_completed,
                    last_activity_date = excluded.last_activity_date,
                    updated_at = excluded.updated_at
                """,
                (
                    record.learner_id,
                    progress.level,
                    progress.xp,
                    progress.xp_to_next_level,
                    progress.streak_days,
                    progress.weekly_goal,
                    progress.weekly_progress,
                    progress.study_minutes,
                    progress.total_xp,
                    progress.weekly_xp,
                    progress.lessons_completed,
                    record.last_activity_date.isoformat() if record.last_activity_date else None,
                    now,
                ),
            )
            for instance in record.lessons.values():
                self._conn.execute(
                    """
                    INSERT INTO lesson_progress (
                        learner_id,
                        lesson_id,
                        status,
                        progress_percent,
                        stars_earned,
                        best_score
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(learner_id, lesson_id) DO UPDATE SET
                        status = excluded.status,
                        progress_percent = excluded.progress_percent,
                        stars_earned = excluded.stars_earned,
                        best_score = excluded.best_score
                    """,
                    (
                        record.learner_id,
                        instance.lesson_id,
                        instance.status.value,
                        instance.progress_percent,
                        instance.stars_earned,
                        instance.best_score,
                    ),
                )
            for unlock in record.unlocks:
                self._conn.execute(
                    """
                    INSERT OR IGNORE INTO achievement_unlocks (learner_id, achievement_id, unlocked_at)
                    VALUES (?, ?, ?)
                    """,
                    (record.learner_id, unlock.achievement_id, unlock.unlocked_at.isoformat()),
                )
            for event in events:
                self._conn.execute(
                    """
                    INSERT INTO event_outbox (learner_id, kind, payload, created_at, delivered_at)
                    VALUES (?, ?, ?, ?, NULL)
                    """,
                    (record.learner_id, event.kind, json.dumps(event_to_dict(event)), now),
                )

    def pending_events(self, limit: int = 100) -> list[OutboxEvent]:
        """Return undelivered events oldest first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT id, learner_id, payload, created_at
                FROM event_outbox
                WHERE delivered_at IS NULL
                ORDER BY id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            OutboxEvent(
                id=int(row["id"]),
                learner_id=str(row["learner_id"]),
                event=event_from_dict(json.loads(str(row["payload"]))),
                created_at=str(row["created_at"]),
            )
            for row in rows
        ]

    def mark_delivered(self, event_ids: list[int]) -> int:
        """Mark outbox events delivered and return how many changed."""
        if not event_ids:
            return 0
        now = datetime.now(UTC).isoformat()
        placeholders = ", ".join("?" for _ in event_ids)
        with self._lock, self._conn:
            cursor = self._conn.execute(
                f"""
                UPDATE event_outbox
                SET delivered_at = ?
                WHERE delivered_at IS NULL AND id IN ({placeholders})
                """,
                (now, *event_ids),
            )
        return cursor.rowcount

    def delete_learner(self, learner_id: str) -> bool:
        """Delete a learner and all associated rows."""
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM event_outbox WHERE learner_id = ?", (learner_id,))
            self._conn.execute("DELETE FROM achievement_unlocks WHERE learner_id = ?", (learner_id,))
            self._conn.execute("DELETE FROM lesson_progress WHERE learner_id = ?", (learner_id,))
            cursor = self._conn.execute("DELETE FROM learners WHERE learner_id = ?", (learner_id,))
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()
