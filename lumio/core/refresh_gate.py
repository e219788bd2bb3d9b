"""Refresh-once-per-slot gate.

A refresh regenerates the current slot's tasks. It is open only when the slot
has tasks, all of them are completed, and no refresh was recorded for this
(day, slot). The refresh record is claimed before anything else runs, so a
stale read of it cannot let a second refresh through. Callers hold the
companion lock.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Iterable

from lumio.core.clock import Clock
from lumio.core.slot_scheduler import SlotScheduler
from lumio.core.task_state import TaskStateMachine
from lumio.core.time_slots import current_interval, slot_day
from lumio.data.day_records import DayRecordStore, RecordMap
from lumio.data.db import TaskDB
from lumio.data.models import Pet, TaskStatus, TaskTemplate, UserTask, WeatherReport

logger = logging.getLogger(__name__)


class RefreshGate:
    def __init__(
        self,
        task_db: TaskDB,
        records: DayRecordStore,
        scheduler: SlotScheduler,
        state_machine: TaskStateMachine,
        clock: Clock,
    ) -> None:
        self._tasks = task_db
        self._records = records
        self._scheduler = scheduler
        self._state = state_machine
        self._clock = clock

    def current_slot_tasks(self, now: datetime) -> list[UserTask]:
        _, interval = current_interval(now, self._clock)
        return self._tasks.list_between(interval.start, interval.end)

    def can_refresh_current_slot(self, now: datetime) -> bool:
        slot, _ = current_interval(now, self._clock)
        tasks = self.current_slot_tasks(now)
        if not tasks or any(t.status is not TaskStatus.COMPLETED for t in tasks):
            return False
        day_key = slot_day(now, self._clock).isoformat()
        return not self._records.get_flag(RecordMap.REFRESH_USED, day_key, slot)

    def refresh(
        self,
        now: datetime,
        report: WeatherReport | None,
        templates: Iterable[TaskTemplate],
        pet: Pet,
        retain_task_id: str | None = None,
    ) -> list[UserTask] | None:
        """Regenerate the current slot. None when the gate is closed."""
        if not self.can_refresh_current_slot(now):
            logger.debug("Refresh rejected for %s", now)
            return None

        slot, _ = current_interval(now, self._clock)
        day_key = slot_day(now, self._clock).isoformat()
        if not self._records.claim_flag(RecordMap.REFRESH_USED, day_key, slot):
            logger.debug("Refresh of %s already used or not recordable", slot.value)
            return None

        try:
            self._scheduler.evaluate_elapsed_slot_penalties(now, pet)
            if retain_task_id and self._state.reset_to_pending(retain_task_id) is None:
                retain_task_id = None
            tasks = self._scheduler.generate_slot_tasks(
                slot, now, report, templates, retained_id=retain_task_id,
            )
        except sqlite3.Error:
            self._records.discard(RecordMap.REFRESH_USED, day_key, slot)
            raise

        self._records.set_flag(RecordMap.SLOT_GENERATED, day_key, slot)
        self._scheduler.prepare_triggers(slot_day(now, self._clock), report)
        logger.info("Refreshed %s with %d new task(s)", slot.value, len(tasks))
        return tasks
