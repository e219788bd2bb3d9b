"""
Lumio — Slot Generation Scheduler.

Decides *when* a slot's tasks are created and keeps every step idempotent per
(day, slot) through the day record maps:

- generation triggers are precomputed once per day and never overwritten;
- a slot is generated at most once, when its own trigger has passed;
- an elapsed slot with unfinished tasks costs bonding at most once.

Each "at most once" step claims its record before acting; a stale read can
only cause a claim attempt that loses, never a second run.

Methods are synchronous and expect the caller to hold the companion lock.
Penalties must be evaluated before generation, since generation purges the
unfinished tasks a penalty looks at.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

from lumio.core import pet_engine
from lumio.core.clock import Clock
from lumio.core.task_generator import TaskGenerator
from lumio.core.time_slots import ACTIVE_SLOTS, classify, slot_day, slot_interval
from lumio.data.day_records import DayRecordStore, RecordMap
from lumio.data.db import TaskDB
from lumio.data.models import (
    Pet,
    TaskStatus,
    TaskTemplate,
    TimeSlot,
    UserStats,
    UserTask,
    WeatherReport,
)

logger = logging.getLogger(__name__)


@dataclass
class GenerationOutcome:
    """Result of a trigger check that generated tasks."""

    slot: TimeSlot
    trigger: datetime
    tasks: list[UserTask] = field(default_factory=list)
    notify: bool = True


def inactive_days(last_active: datetime | None, now: datetime, clock: Clock) -> int:
    """Fully elapsed calendar days between the last active day and today."""
    if last_active is None:
        return 0
    gap = (clock.localize(now).date() - clock.localize(last_active).date()).days
    return max(0, gap - 1)


class SlotScheduler:
    """Trigger bookkeeping, slot generation and elapsed-slot penalties."""

    def __init__(
        self,
        task_db: TaskDB,
        records: DayRecordStore,
        generator: TaskGenerator,
        clock: Clock,
        grace: timedelta = timedelta(minutes=90),
    ) -> None:
        self._tasks = task_db
        self._records = records
        self._generator = generator
        self._clock = clock
        self._grace = grace

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def prepare_triggers(self, day: date, report: WeatherReport | None) -> dict[TimeSlot, datetime]:
        """Fill in missing trigger times for `day`; existing ones are kept."""
        day_key = day.isoformat()
        triggers: dict[TimeSlot, datetime] = {}
        for slot in ACTIVE_SLOTS:
            existing = self._records.get_timestamp(RecordMap.GENERATION_TRIGGERS, day_key, slot)
            if existing is not None:
                triggers[slot] = existing
                continue
            trigger = self._generator.generation_trigger_time(slot, day, report)
            if trigger is None:
                continue
            if self._records.claim_timestamp(RecordMap.GENERATION_TRIGGERS, day_key, slot, trigger):
                triggers[slot] = trigger
                logger.info("Generation trigger for %s %s set to %s", day_key, slot.value, trigger)
                continue
            stored = self._records.get_timestamp(RecordMap.GENERATION_TRIGGERS, day_key, slot)
            if stored is not None:
                triggers[slot] = stored
        return triggers

    def triggers_for(self, day: date) -> dict[TimeSlot, datetime]:
        day_key = day.isoformat()
        triggers = {}
        for slot in ACTIVE_SLOTS:
            value = self._records.get_timestamp(RecordMap.GENERATION_TRIGGERS, day_key, slot)
            if value is not None:
                triggers[slot] = value
        return triggers

    def is_generated(self, day: date, slot: TimeSlot) -> bool:
        return self._records.get_flag(RecordMap.SLOT_GENERATED, day.isoformat(), slot)

    def next_unfired_trigger(self, now: datetime) -> datetime | None:
        """Earliest future trigger today whose slot is not generated yet."""
        day = slot_day(now, self._clock)
        pending = [
            trigger
            for slot, trigger in self.triggers_for(day).items()
            if trigger > now and not self.is_generated(day, slot)
        ]
        return min(pending, default=None)

    def check_slot_generation_trigger(
        self,
        now: datetime,
        report: WeatherReport | None,
        templates: Iterable[TaskTemplate],
    ) -> GenerationOutcome | None:
        """Generate the current slot's tasks once its trigger has passed.

        Only the current slot is considered. Returns None when nothing was
        generated.
        """
        slot = classify(now, self._clock)
        if slot not in ACTIVE_SLOTS:
            return None
        day = slot_day(now, self._clock)

        trigger = self._records.get_timestamp(
            RecordMap.GENERATION_TRIGGERS, day.isoformat(), slot,
        )
        if trigger is None:
            trigger = self.prepare_triggers(day, report).get(slot)
            if trigger is None:
                logger.warning("No generation trigger stored for %s %s", day, slot.value)
                return None

        if now < trigger or self.is_generated(day, slot):
            return None
        if not self._records.claim_flag(RecordMap.SLOT_GENERATED, day.isoformat(), slot):
            return None

        try:
            tasks = self.generate_slot_tasks(slot, now, report, templates)
        except sqlite3.Error:
            self._records.discard(RecordMap.SLOT_GENERATED, day.isoformat(), slot)
            raise
        notify = now - trigger <= self._grace
        if not notify:
            logger.info("Slot %s generated %s after its trigger; not notifying", slot.value, now - trigger)
        return GenerationOutcome(slot=slot, trigger=trigger, tasks=tasks, notify=notify)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_slot_tasks(
        self,
        slot: TimeSlot,
        now: datetime,
        report: WeatherReport | None,
        templates: Iterable[TaskTemplate],
        retained_id: str | None = None,
    ) -> list[UserTask]:
        """Purge stale and current-slot tasks, then insert a fresh batch.

        `retained_id` survives both purges and its title is not drawn again.
        Recording the slot as generated is left to the caller.
        """
        day = slot_day(now, self._clock)
        interval = slot_interval(slot, day, self._clock)
        excluding = [retained_id] if retained_id else []

        self._tasks.delete_between(
            self._clock.at(day, 0), interval.start, uncompleted_only=True, excluding=excluding,
        )
        self._tasks.delete_between(interval.start, interval.end, excluding=excluding)

        reserved = {t.title for t in self._tasks.list_between(self._clock.at(day, 0), self._clock.at(day, 24))}
        if retained_id:
            retained = self._tasks.get_task(retained_id)
            if retained is not None:
                reserved.add(retained.title)

        tasks = self._generator.generate_tasks(slot, day, report, templates, reserved)
        self._tasks.add_tasks(tasks)
        return tasks

    # ------------------------------------------------------------------
    # Penalties and decay
    # ------------------------------------------------------------------

    def evaluate_elapsed_slot_penalties(self, now: datetime, pet: Pet) -> int:
        """Lower bonding once for each elapsed slot today with unfinished tasks.

        Returns the number of penalties applied. The caller saves the pet.
        """
        day = slot_day(now, self._clock)
        day_key = day.isoformat()
        applied = 0
        for slot in ACTIVE_SLOTS:
            interval = slot_interval(slot, day, self._clock)
            if interval.end > now:
                continue
            if self._records.get_flag(RecordMap.BONDING_PENALTY, day_key, slot):
                continue
            tasks = self._tasks.list_between(interval.start, interval.end)
            if not any(t.status is not TaskStatus.COMPLETED for t in tasks):
                continue
            if not self._records.claim_flag(RecordMap.BONDING_PENALTY, day_key, slot):
                continue
            pet_engine.apply_light_penalty(pet)
            applied += 1
            logger.info("Bonding penalty for unfinished %s tasks on %s", slot.value, day_key)
        return applied

    def apply_daily_decay(self, stats: UserStats, pet: Pet, now: datetime) -> int:
        """Decay bonding on the first check of a new day. Returns the bonding delta."""
        last = stats.last_active_date
        if last is not None and self._clock.localize(last).date() >= self._clock.localize(now).date():
            return 0
        delta = pet_engine.apply_daily_decay(pet, inactive_days(last, now, self._clock))
        stats.last_active_date = now
        return delta
