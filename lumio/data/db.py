"""
Lumio — SQLite repositories.

One repository per entity (tasks, templates, stats/pet, items, energy history).
Every mutation is an explicit "update and save" call; nothing is change-tracked.
Timestamps are stored as fixed-width UTC strings so range queries can compare
them as text.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from lumio.data.models import (
    EnergyHistoryEntry,
    Item,
    ItemType,
    Pet,
    TaskCategory,
    TaskStatus,
    TaskTemplate,
    UserStats,
    UserTask,
    WeatherType,
)

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class _SQLiteStore:
    """Shared connection handling for the repositories below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from lumio.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError


class TaskDB(_SQLiteStore):
    """SQLite-backed storage for task instances."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_tasks (
                    id                  TEXT    PRIMARY KEY,
                    title               TEXT    NOT NULL,
                    weather_type        TEXT    NOT NULL,
                    category            TEXT    NOT NULL,
                    energy_reward       INTEGER NOT NULL DEFAULT 0,
                    scheduled_at        TEXT    NOT NULL,
                    status              TEXT    NOT NULL DEFAULT 'pending',
                    started_at          TEXT,
                    can_complete_after  TEXT,
                    completed_at        TEXT,
                    is_onboarding       INTEGER NOT NULL DEFAULT 0,
                    day_length_minutes  INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_user_tasks_scheduled ON user_tasks (scheduled_at)"
            )
        logger.debug("Task table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> UserTask:
        return UserTask(
            id=row["id"],
            title=row["title"],
            weather_type=WeatherType(row["weather_type"]),
            category=TaskCategory(row["category"]),
            energy_reward=row["energy_reward"],
            scheduled_at=from_db_time(row["scheduled_at"]),
            status=TaskStatus(row["status"]),
            started_at=from_db_time(row["started_at"]),
            can_complete_after=from_db_time(row["can_complete_after"]),
            completed_at=from_db_time(row["completed_at"]),
            is_onboarding=bool(row["is_onboarding"]),
            day_length_minutes=row["day_length_minutes"],
        )

    @staticmethod
    def _task_params(task: UserTask) -> tuple:
        return (
            task.title,
            task.weather_type.value,
            task.category.value,
            task.energy_reward,
            to_db_time(task.scheduled_at),
            task.status.value,
            to_db_time(task.started_at),
            to_db_time(task.can_complete_after),
            to_db_time(task.completed_at),
            int(task.is_onboarding),
            task.day_length_minutes,
            task.id,
        )

    def add_tasks(self, tasks: Iterable[UserTask]) -> int:
        """Insert new task instances. Returns the number inserted."""
        rows = [self._task_params(t) for t in tasks]
        if not rows:
            return 0
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO user_tasks
                    (title, weather_type, category, energy_reward, scheduled_at,
                     status, started_at, can_complete_after, completed_at,
                     is_onboarding, day_length_minutes, id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.info("Saved %d task(s)", len(rows))
        return len(rows)

    def update_task(self, task: UserTask) -> bool:
        """Persist every mutable field of an existing task."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE user_tasks SET
                    title = ?, weather_type = ?, category = ?, energy_reward = ?,
                    scheduled_at = ?, status = ?, started_at = ?,
                    can_complete_after = ?, completed_at = ?, is_onboarding = ?,
                    day_length_minutes = ?
                WHERE id = ?
                """,
                self._task_params(task),
            )
        return cursor.rowcount > 0

    def get_task(self, task_id: str) -> UserTask | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_tasks WHERE id = ?", (task_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_between(
        self,
        start: datetime,
        end: datetime,
        status: TaskStatus | None = None,
    ) -> list[UserTask]:
        """Tasks scheduled in [start, end), earliest first."""
        query = "SELECT * FROM user_tasks WHERE scheduled_at >= ? AND scheduled_at < ?"
        params: list = [to_db_time(start), to_db_time(end)]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY scheduled_at"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_by_status(self, status: TaskStatus) -> list[UserTask]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM user_tasks WHERE status = ? ORDER BY scheduled_at",
                (status.value,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def delete_between(
        self,
        start: datetime,
        end: datetime,
        uncompleted_only: bool = False,
        excluding: Iterable[str] = (),
    ) -> int:
        """Delete non-onboarding tasks scheduled in [start, end)."""
        query = (
            "DELETE FROM user_tasks WHERE scheduled_at >= ? AND scheduled_at < ?"
            " AND is_onboarding = 0"
        )
        params: list = [to_db_time(start), to_db_time(end)]
        if uncompleted_only:
            query += " AND status != ?"
            params.append(TaskStatus.COMPLETED.value)
        excluded = list(excluding)
        if excluded:
            query += f" AND id NOT IN ({', '.join('?' for _ in excluded)})"
            params.extend(excluded)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
        if cursor.rowcount:
            logger.info("Deleted %d task(s) between %s and %s", cursor.rowcount, start, end)
        return cursor.rowcount

    def delete_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM user_tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0


class TemplateDB(_SQLiteStore):
    """SQLite-backed storage for the task template catalog."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_templates (
                    id            TEXT    PRIMARY KEY,
                    title         TEXT    NOT NULL UNIQUE,
                    category      TEXT    NOT NULL,
                    is_outdoor    INTEGER NOT NULL DEFAULT 0,
                    energy_reward INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Template table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_template(row: sqlite3.Row) -> TaskTemplate:
        return TaskTemplate(
            id=row["id"],
            title=row["title"],
            category=TaskCategory(row["category"]),
            is_outdoor=bool(row["is_outdoor"]),
            energy_reward=row["energy_reward"],
        )

    def list_all(self) -> list[TaskTemplate]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM task_templates ORDER BY title").fetchall()
        return [self._row_to_template(r) for r in rows]

    def replace_all(self, templates: Iterable[TaskTemplate]) -> int:
        """Atomically swap the whole catalog for the given templates."""
        rows = [
            (t.id, t.title, t.category.value, int(t.is_outdoor), t.energy_reward)
            for t in templates
        ]
        with self._connect() as conn:
            conn.execute("DELETE FROM task_templates")
            conn.executemany(
                """
                INSERT INTO task_templates (id, title, category, is_outdoor, energy_reward)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.info("Task template catalog replaced with %d template(s)", len(rows))
        return len(rows)


class ProfileDB(_SQLiteStore):
    """SQLite-backed storage for the singleton stats and pet records."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_stats (
                    id                     INTEGER PRIMARY KEY CHECK (id = 1),
                    total_energy           INTEGER NOT NULL,
                    total_days             INTEGER NOT NULL DEFAULT 0,
                    completed_tasks_count  INTEGER NOT NULL DEFAULT 0,
                    region                 TEXT    NOT NULL DEFAULT '',
                    last_active_date       TEXT,
                    notifications_enabled  INTEGER NOT NULL DEFAULT 1,
                    onboarded              INTEGER NOT NULL DEFAULT 0,
                    randomize_task_time    INTEGER NOT NULL DEFAULT 1
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pet (
                    id             INTEGER PRIMARY KEY CHECK (id = 1),
                    name           TEXT    NOT NULL,
                    bonding_score  INTEGER NOT NULL,
                    level          INTEGER NOT NULL,
                    xp             INTEGER NOT NULL,
                    decorations    TEXT    NOT NULL DEFAULT '[]'
                )
            """)
        logger.debug("Profile tables initialized at %s", self._db_path)

    def get_or_create_stats(self) -> UserStats:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM user_stats WHERE id = 1").fetchone()
        if row is None:
            stats = UserStats()
            self.save_stats(stats)
            logger.info("Created default user stats")
            return stats
        return UserStats(
            total_energy=row["total_energy"],
            total_days=row["total_days"],
            completed_tasks_count=row["completed_tasks_count"],
            region=row["region"],
            last_active_date=from_db_time(row["last_active_date"]),
            notifications_enabled=bool(row["notifications_enabled"]),
            onboarded=bool(row["onboarded"]),
            randomize_task_time=bool(row["randomize_task_time"]),
        )

    def save_stats(self, stats: UserStats) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO user_stats
                    (id, total_energy, total_days, completed_tasks_count, region,
                     last_active_date, notifications_enabled, onboarded,
                     randomize_task_time)
                VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stats.total_energy,
                    stats.total_days,
                    stats.completed_tasks_count,
                    stats.region,
                    to_db_time(stats.last_active_date),
                    int(stats.notifications_enabled),
                    int(stats.onboarded),
                    int(stats.randomize_task_time),
                ),
            )

    def get_or_create_pet(self) -> Pet:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM pet WHERE id = 1").fetchone()
        if row is None:
            pet = Pet()
            self.save_pet(pet)
            logger.info("Created pet '%s'", pet.name)
            return pet
        return Pet(
            name=row["name"],
            bonding_score=row["bonding_score"],
            level=row["level"],
            xp=row["xp"],
            decorations=json.loads(row["decorations"]),
        )

    def save_pet(self, pet: Pet) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO pet (id, name, bonding_score, level, xp, decorations)
                VALUES (1, ?, ?, ?, ?, ?)
                """,
                (pet.name, pet.bonding_score, pet.level, pet.xp, json.dumps(pet.decorations)),
            )


class ItemDB(_SQLiteStore):
    """Shop catalog plus the inventory counts per SKU."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    sku            TEXT    PRIMARY KEY,
                    type           TEXT    NOT NULL,
                    cost_energy    INTEGER NOT NULL,
                    bonding_boost  INTEGER NOT NULL DEFAULT 0,
                    asset_name     TEXT    NOT NULL DEFAULT ''
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS inventory (
                    sku    TEXT    PRIMARY KEY,
                    count  INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Item tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            sku=row["sku"],
            type=ItemType(row["type"]),
            cost_energy=row["cost_energy"],
            bonding_boost=row["bonding_boost"],
            asset_name=row["asset_name"],
        )

    def list_items(self) -> list[Item]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM items ORDER BY sku").fetchall()
        return [self._row_to_item(r) for r in rows]

    def get_item(self, sku: str) -> Item | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM items WHERE sku = ?", (sku,)).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def replace_items(self, items: Iterable[Item]) -> int:
        rows = [
            (i.sku, i.type.value, i.cost_energy, i.bonding_boost, i.asset_name)
            for i in items
        ]
        with self._connect() as conn:
            conn.execute("DELETE FROM items")
            conn.executemany(
                """
                INSERT INTO items (sku, type, cost_energy, bonding_boost, asset_name)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.info("Shop catalog replaced with %d item(s)", len(rows))
        return len(rows)

    def inventory(self) -> dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT sku, count FROM inventory WHERE count > 0 ORDER BY sku"
            ).fetchall()
        return {r["sku"]: r["count"] for r in rows}

    def add_inventory(self, sku: str, amount: int = 1) -> int:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO inventory (sku, count) VALUES (?, ?)
                ON CONFLICT(sku) DO UPDATE SET count = count + excluded.count
                """,
                (sku, amount),
            )
            row = conn.execute("SELECT count FROM inventory WHERE sku = ?", (sku,)).fetchone()
        return row["count"]

    def take_inventory(self, sku: str) -> bool:
        """Remove one unit of a SKU. False when none is left."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE inventory SET count = count - 1 WHERE sku = ? AND count > 0",
                (sku,),
            )
        return cursor.rowcount > 0


class HistoryDB(_SQLiteStore):
    """Append-only audit log of total energy snapshots."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS energy_history (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    recorded_at   TEXT    NOT NULL,
                    total_energy  INTEGER NOT NULL
                )
            """)
        logger.debug("Energy history table initialized at %s", self._db_path)

    def append(self, recorded_at: datetime, total_energy: int) -> EnergyHistoryEntry:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO energy_history (recorded_at, total_energy) VALUES (?, ?)",
                (to_db_time(recorded_at), total_energy),
            )
        return EnergyHistoryEntry(
            id=cursor.lastrowid, recorded_at=recorded_at, total_energy=total_energy,
        )

    def fetch(self, limit: int | None = None) -> list[EnergyHistoryEntry]:
        """Most recent entries last."""
        query = "SELECT * FROM energy_history ORDER BY recorded_at DESC, id DESC"
        params: list = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        entries = [
            EnergyHistoryEntry(
                id=r["id"],
                recorded_at=from_db_time(r["recorded_at"]),
                total_energy=r["total_energy"],
            )
            for r in rows
        ]
        entries.reverse()
        return entries
