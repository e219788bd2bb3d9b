"""
Lumio — Notification scheduling.

Decides whether and when to notify; delivery goes through a NotificationPort.
Reminders are date jobs on the shared scheduler keyed by task id, so
rescheduling cancels the previous set instead of stacking duplicates.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from apscheduler.schedulers.base import BaseScheduler

from lumio.core.clock import Clock
from lumio.core.jobs import cancel_job, keys_with_prefix
from lumio.data.models import TaskStatus, TimeSlot, UserTask
from lumio.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

UNLOCK_TITLE = "New tasks are ready!"
REMINDER_TITLE = "Lumio found some new activities for you"
REMINDER_PREFIX = "reminder:"

SLOT_MESSAGES: dict[TimeSlot, str] = {
    TimeSlot.MORNING: "Morning, get the day started with Lumio!",
    TimeSlot.AFTERNOON: "Check out some fun activities for today!",
    TimeSlot.EVENING: "It's been a long day, but you've got this. Keep going!",
    TimeSlot.NIGHT: "Time to wind down and recharge.",
}

# Reminders are only sent for tasks scheduled in [06:00, 22:00)
REMINDER_HOURS = range(6, 22)


class NotificationScheduler:
    def __init__(
        self,
        notifier: NotificationPort,
        clock: Clock,
        enabled: bool = True,
        jobs: BaseScheduler | None = None,
    ) -> None:
        self._notifier = notifier
        self._clock = clock
        self.enabled = enabled
        self._jobs = jobs

    async def _send(self, title: str, body: str) -> bool:
        try:
            await self._notifier.send(title, body)
        except Exception as exc:
            logger.error("Failed to deliver notification '%s': %s", title, exc)
            return False
        return True

    async def notify_tasks_unlocked(self, slot: TimeSlot) -> bool:
        if not self.enabled:
            return False
        sent = await self._send(UNLOCK_TITLE, SLOT_MESSAGES[slot])
        if sent:
            logger.info("Unlock notification sent for %s", slot.value)
        return sent

    def schedule_task_reminders(self, tasks: Iterable[UserTask], now: datetime) -> int:
        """Replace all reminder jobs with one per upcoming pending task."""
        self.cancel_all()
        if not self.enabled:
            return 0
        if self._jobs is None:
            logger.debug("No job scheduler; reminders skipped")
            return 0

        count = 0
        for task in tasks:
            if task.status is not TaskStatus.PENDING or task.scheduled_at <= now:
                continue
            if self._clock.localize(task.scheduled_at).hour not in REMINDER_HOURS:
                continue
            self._jobs.add_job(
                self._send,
                trigger="date",
                run_date=task.scheduled_at,
                args=[REMINDER_TITLE, task.title],
                id=REMINDER_PREFIX + task.id,
                replace_existing=True,
            )
            count += 1

        logger.debug("Scheduled %d task reminder(s)", count)
        return count

    def scheduled_reminders(self) -> list[str]:
        if self._jobs is None:
            return []
        return keys_with_prefix(self._jobs, REMINDER_PREFIX)

    def cancel_all(self) -> None:
        if self._jobs is None:
            return
        for task_id in self.scheduled_reminders():
            cancel_job(self._jobs, REMINDER_PREFIX + task_id)
