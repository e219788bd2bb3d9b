"""
Lumio — Per-day / per-slot record maps.

Four durable "has this already happened" maps make generation, refresh and
penalties idempotent per (day, slot). Each map is stored as one JSON document:

    {"<ISO-day>": {"<slot>": <ISO timestamp or bool>}}

Every write is a single read-purge-merge-write transaction: all days except
the one being written are dropped, the new key is merged into what is already
stored for that day, and the document is saved. A failed write is reported as
False and never assumed to have happened. A claim checks and writes in that
same transaction, so "only once" decisions never rest on a separate read.

The same table also carries a small meta key/value space used for catalog
versions.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union

from lumio.data.models import TimeSlot

logger = logging.getLogger(__name__)

RecordValue = Union[bool, str]


class RecordMap(str, Enum):
    REFRESH_USED = "refresh_used"
    GENERATION_TRIGGERS = "generation_triggers"
    SLOT_GENERATED = "slot_generated"
    BONDING_PENALTY = "bonding_penalty"


class DayRecordStore:
    """SQLite-backed store for the per-day record maps and meta values."""

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

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS day_records (
                    name     TEXT PRIMARY KEY,
                    payload  TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key    TEXT PRIMARY KEY,
                    value  TEXT NOT NULL
                )
            """)
        logger.debug("Day record tables initialized at %s", self._db_path)

    # -- raw maps -----------------------------------------------------------

    @staticmethod
    def _decode(payload: str | None) -> dict[str, dict[str, Any]]:
        if not payload:
            return {}
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable day record payload")
            return {}
        if not isinstance(data, dict):
            return {}
        return {day: dict(slots) for day, slots in data.items() if isinstance(slots, dict)}

    def load(self, name: RecordMap) -> dict[str, dict[str, Any]]:
        """Return the whole map as stored. Empty on read failure."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload FROM day_records WHERE name = ?", (name.value,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to read %s records: %s", name.value, exc)
            return {}
        return self._decode(row["payload"] if row else None)

    def get(self, name: RecordMap, day_key: str, slot: TimeSlot) -> RecordValue | None:
        return self.load(name).get(day_key, {}).get(slot.value)

    def _write(
        self,
        name: RecordMap,
        day_key: str,
        slot: TimeSlot,
        value: RecordValue | None,
        only_if_absent: bool = False,
    ) -> bool:
        """One read-purge-merge-write transaction. True when the map was written.

        `value=None` removes the key. With `only_if_absent` an existing key
        is left alone and False is returned.
        """
        try:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT payload FROM day_records WHERE name = ?", (name.value,)
                ).fetchone()
                current = self._decode(row["payload"] if row else None)
                day_entries = current.get(day_key, {})
                if only_if_absent and slot.value in day_entries:
                    conn.rollback()
                    logger.debug("%s already recorded for %s/%s", name.value, day_key, slot.value)
                    return False
                if value is None:
                    day_entries.pop(slot.value, None)
                else:
                    day_entries[slot.value] = value
                conn.execute(
                    "INSERT OR REPLACE INTO day_records (name, payload) VALUES (?, ?)",
                    (name.value, json.dumps({day_key: day_entries}, sort_keys=True)),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.error(
                "Failed to write %s record for %s/%s: %s",
                name.value, day_key, slot.value, exc,
            )
            return False
        logger.debug("Recorded %s for %s/%s", name.value, day_key, slot.value)
        return True

    def set(self, name: RecordMap, day_key: str, slot: TimeSlot, value: RecordValue) -> bool:
        """Purge other days, merge (day, slot) -> value, save. False on failure."""
        return self._write(name, day_key, slot, value)

    def claim(self, name: RecordMap, day_key: str, slot: TimeSlot, value: RecordValue) -> bool:
        """Record (day, slot) only if it is not recorded yet.

        The existence check and the write share one transaction, so a stale
        or failed earlier read can never make two callers both win. False
        when the key already exists or the write failed.
        """
        return self._write(name, day_key, slot, value, only_if_absent=True)

    def discard(self, name: RecordMap, day_key: str, slot: TimeSlot) -> bool:
        return self._write(name, day_key, slot, None)

    # -- typed helpers ------------------------------------------------------

    def get_flag(self, name: RecordMap, day_key: str, slot: TimeSlot) -> bool:
        return self.get(name, day_key, slot) is True

    def set_flag(self, name: RecordMap, day_key: str, slot: TimeSlot) -> bool:
        return self.set(name, day_key, slot, True)

    def claim_flag(self, name: RecordMap, day_key: str, slot: TimeSlot) -> bool:
        return self.claim(name, day_key, slot, True)

    def get_timestamp(self, name: RecordMap, day_key: str, slot: TimeSlot) -> datetime | None:
        raw = self.get(name, day_key, slot)
        if not isinstance(raw, str):
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed timestamp %r in %s", raw, name.value)
            return None

    def claim_timestamp(
        self, name: RecordMap, day_key: str, slot: TimeSlot, value: datetime,
    ) -> bool:
        return self.claim(name, day_key, slot, value.isoformat())

    # -- meta ---------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value),
            )
